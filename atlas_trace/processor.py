"""Pipeline step: replaces raw Atlas lines in a message with parsed records."""

import logging

from atlas_trace.config import Config
from atlas_trace.errors import MalformedLineError, TimestampError
from atlas_trace.parsers import parse_line_json

logger = logging.getLogger(__name__)

# Upstream occasionally emits a literal null part
NULL_PART = "null"
QUOTE = '"'


def prepare_part(part: str) -> str | None:
    """Strip the transport quoting from a raw part. Returns None for null parts.

    The surrounding quotes are only removed when both are present, then one
    trailing semicolon is dropped.
    """
    if part == NULL_PART:
        return None
    if len(part) >= 2 and part[0] == QUOTE and part[-1] == QUOTE:
        part = part[1:-1]
    if part.endswith(";"):
        part = part[:-1]
    return part


class AtlasProcessor:
    """Parses the targeted parts of each message in place.

    Parts that fail to parse (no header, bad timestamp) are logged and left
    untouched so the raw line still flows downstream.
    """

    def __init__(self, config: Config):
        self._parts = config.parts

    def _target_indices(self, length: int) -> list[int]:
        if not self._parts:
            return list(range(length))
        indices = []
        for index in self._parts:
            if -length <= index < length:
                if index % length not in indices:
                    indices.append(index % length)
            else:
                logger.warning("Part index %d out of range for message of %d parts", index, length)
        return indices

    def process_message(self, parts: list[str | bytes]) -> list[str] | None:
        """Return the new message, or None when there is nothing to send."""
        new_parts = [p.decode("utf-8", errors="replace") if isinstance(p, bytes) else p
                     for p in parts]

        for index in self._target_indices(len(new_parts)):
            line = prepare_part(new_parts[index])
            if line is None:
                continue
            try:
                new_parts[index] = parse_line_json(line)
            except (MalformedLineError, TimestampError) as exc:
                logger.error("Failed to parse message part: %s", exc)

        if not new_parts:
            return None
        return new_parts
