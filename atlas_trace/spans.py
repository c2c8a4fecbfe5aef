"""Span synthesis: derive one trace span from a timed request/response record."""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from opentelemetry.trace import Tracer

from atlas_trace.errors import SpanSynthesisError
from atlas_trace.models import AtlasRecord, ReqResp

logger = logging.getLogger(__name__)

HEADER_KEY = "header"
DURATION_KEY = "duration"

# Header keys that identify the transaction across systems
HEADER_TAG_RENAMES = {
    "uid": "guid:correlation_id",
    "sid": "guid:sid",
}

_DECIMAL_RE = re.compile(r"^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)$")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class SpanData:
    operation_name: str
    start_time: datetime
    end_time: datetime
    tags: dict[str, Any] = field(default_factory=dict)


def is_scalar(value: Any) -> bool:
    """Strings and numbers; booleans, nulls, lists and maps are not scalars."""
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def parse_duration(value: Any) -> timedelta:
    """Read a decimal number of seconds, given as text or as a number."""
    if is_scalar(value) and _DECIMAL_RE.match(str(value)):
        try:
            return timedelta(seconds=float(value))
        except (OverflowError, ValueError) as exc:
            raise SpanSynthesisError(f"Duration out of range: {value!r}") from exc
    raise SpanSynthesisError(f"Invalid duration: {value!r}")


def _header_of(record: AtlasRecord) -> dict | None:
    if not isinstance(record.command, ReqResp):
        return None
    header = record.command.message.get(HEADER_KEY)
    if not isinstance(header, dict) or header.get(DURATION_KEY) is None:
        return None
    return header


def is_traceable(record: AtlasRecord) -> bool:
    return _header_of(record) is not None


def _tag_value(value: Any) -> Any:
    # Span attributes only carry primitives
    if is_scalar(value) or isinstance(value, bool):
        return value
    return json.dumps(value, separators=(",", ":"))


def synthesize_span(record: AtlasRecord) -> SpanData | None:
    """Build the span for *record*, or None when the record carries no timing.

    Tags are applied in message key order; a later key overwrites an earlier
    tag of the same name.
    """
    header = _header_of(record)
    if header is None:
        return None

    duration = parse_duration(header[DURATION_KEY])
    try:
        end_time = record.timestamp + duration
    except OverflowError as exc:
        raise SpanSynthesisError(f"Span end time out of range: {exc}") from exc
    command = record.command
    tags: dict[str, Any] = {"client": command.client.ip}

    for outer, value in command.message.items():
        if not isinstance(value, dict):
            continue
        if outer == HEADER_KEY:
            for key, val in value.items():
                if key == DURATION_KEY:
                    continue
                tags[HEADER_TAG_RENAMES.get(key, key)] = _tag_value(val)
            continue
        for key, val in value.items():
            if is_scalar(val):
                tags[f"{outer}.{key}"] = val

    return SpanData(
        operation_name=record.command_type,
        start_time=record.timestamp,
        end_time=end_time,
        tags=tags,
    )


def to_nanos(ts: datetime) -> int:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (ts - _EPOCH) // timedelta(microseconds=1) * 1000


def emit_span(tracer: Tracer, span: SpanData) -> None:
    """Start, tag and finish *span* on *tracer* with its recorded times."""
    otel_span = tracer.start_span(span.operation_name, start_time=to_nanos(span.start_time))
    for key, value in span.tags.items():
        otel_span.set_attribute(key, value)
    otel_span.end(end_time=to_nanos(span.end_time))
