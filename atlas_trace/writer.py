"""Pipeline output: turns serialized Atlas records into trace spans."""

import json
import logging
import threading
from typing import Iterable

from atlas_trace.config import Config
from atlas_trace.errors import SpanSynthesisError
from atlas_trace.models import AtlasRecord, CommandKind, loads
from atlas_trace.processor import NULL_PART
from atlas_trace.registry import TracerRegistry
from atlas_trace.spans import emit_span, synthesize_span

logger = logging.getLogger(__name__)


class TraceWriter:
    """Emits one span per timed request/response record.

    Lifecycle: connect() -> write()* -> close_async() -> wait_for_close().
    """

    def __init__(self, config: Config, registry: TracerRegistry | None = None):
        self._config = config
        self._registry = registry or TracerRegistry(config)
        self._close_thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def registry(self) -> TracerRegistry:
        return self._registry

    def connect(self) -> None:
        logger.info(
            "Sending traces to address: %s:%d",
            self._config.collector_host, self._config.collector_port,
        )

    def write_record(self, record: AtlasRecord) -> bool:
        """Emit the span for *record*. Returns False when nothing was emitted."""
        if record.kind is CommandKind.UNPARSED:
            return False
        try:
            span = synthesize_span(record)
        except SpanSynthesisError as exc:
            logger.warning("Skipping span for %s on %s: %s",
                           record.command_type, record.hostname, exc)
            return False
        if span is None:
            return False

        handle = self._registry.get_or_create(record.hostname, self._config.component)
        emit_span(handle.tracer, span)
        return True

    def write(self, parts: Iterable[str | bytes | AtlasRecord]) -> int:
        """Emit spans for every part of a message. Returns the number emitted."""
        emitted = 0
        for part in parts:
            if isinstance(part, AtlasRecord):
                record = part
            elif part in (NULL_PART, NULL_PART.encode()):
                continue
            else:
                try:
                    record = loads(part)
                except (ValueError, KeyError, TypeError) as exc:
                    if isinstance(exc, json.JSONDecodeError):
                        logger.debug("Skipping part that is not a record: %s", exc)
                    else:
                        logger.error("Failed to decode record: %s", exc)
                    continue
            if self.write_record(record):
                emitted += 1
        return emitted

    def _flush(self) -> None:
        timeout_millis = int(self._config.flush_timeout * 1000)
        try:
            flushed = self._registry.flush_all(timeout_millis)
        except Exception:
            logger.exception("Flushing tracers failed")
            return
        logger.info("Flushed %d tracer(s)", flushed)

    def close_async(self) -> None:
        """Start flushing every tracer in the background."""
        with self._lock:
            if self._close_thread is not None:
                return
            self._close_thread = threading.Thread(
                target=self._flush, name="trace-writer-close", daemon=True,
            )
            self._close_thread.start()

    def wait_for_close(self, timeout: float | None = None) -> bool:
        """Wait up to *timeout* seconds for close_async() to finish.

        Returns False on timeout. Never raises.
        """
        with self._lock:
            thread = self._close_thread
        if thread is None:
            return True

        thread.join(self._config.flush_timeout if timeout is None else timeout)
        if thread.is_alive():
            logger.warning("Timed out waiting for tracers to flush")
            return False
        return True
