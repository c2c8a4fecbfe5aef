"""Directory watcher: parses Atlas .log files as they appear or change."""

import json
import logging
import os
import tempfile
import time

from watchdog.events import FileSystemEventHandler

from atlas_trace.processor import AtlasProcessor
from atlas_trace.writer import TraceWriter

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.5


def write_json_atomic(path: str, data) -> None:
    """Write *data* as JSON next to *path* then rename it into place."""
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


class AtlasFileHandler(FileSystemEventHandler):
    """Parses whole .log files into parsed_<name>.json, optionally tracing them."""

    def __init__(self, output_dir: str, processor: AtlasProcessor,
                 writer: TraceWriter | None = None):
        super().__init__()
        self._output_dir = output_dir
        self._processor = processor
        self._writer = writer
        self._last_processed: dict[str, float] = {}

    def on_created(self, event):
        if not event.is_directory and event.src_path.endswith(".log"):
            self._handle(event.src_path)

    def on_modified(self, event):
        if not event.is_directory and event.src_path.endswith(".log"):
            self._handle(event.src_path)

    def _handle(self, filepath: str):
        now = time.time()
        if now - self._last_processed.get(filepath, 0) < DEBOUNCE_SECONDS:
            return
        self._last_processed[filepath] = now
        self.process_file(filepath)

    def process_file(self, filepath: str) -> str | None:
        """Parse every line of *filepath*. Returns the output path."""
        logger.info("Processing: %s", filepath)
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                lines = [line.rstrip("\r\n") for line in f]
        except OSError as e:
            logger.error("Failed to read %s: %s", filepath, e)
            return None

        records = []
        failed = 0
        for line in lines:
            if not line.strip():
                continue
            message = self._processor.process_message([line])
            if message is None:
                continue
            try:
                decoded = json.loads(message[0])
            except json.JSONDecodeError:
                decoded = None
            if not isinstance(decoded, dict):
                failed += 1
                continue
            records.append(decoded)
            if self._writer is not None:
                self._writer.write(message)

        basename = os.path.splitext(os.path.basename(filepath))[0]
        target = os.path.join(self._output_dir, f"parsed_{basename}.json")
        write_json_atomic(target, records)

        logger.info("  -> %s: %d parsed, %d failed", os.path.basename(target), len(records), failed)
        return target

    def process_existing_files(self, input_dir: str):
        """Scan *input_dir* for .log files present at startup."""
        if not os.path.isdir(input_dir):
            return
        for name in sorted(os.listdir(input_dir)):
            if name.endswith(".log"):
                self.process_file(os.path.join(input_dir, name))
