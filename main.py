#!/usr/bin/env python3
"""atlas-trace: parse Atlas log lines into records and trace spans.

One-shot mode prints one JSON record per input line; watch mode parses .log
files dropped into a directory.
"""

import logging
import signal
import sys
import threading
from argparse import ArgumentParser

from watchdog.observers import Observer

from atlas_trace.config import load_config
from atlas_trace.processor import AtlasProcessor
from atlas_trace.watcher import AtlasFileHandler
from atlas_trace.writer import TraceWriter

logger = logging.getLogger(__name__)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="atlas-trace",
        description="Parse Atlas log lines and emit trace spans.",
    )
    parser.add_argument(
        "files",
        nargs="*",
        help="Log file(s) to parse (default: stdin)",
    )
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument(
        "--traces",
        action="store_true",
        help="Send spans for timed request/response records",
    )
    parser.add_argument("--watch", metavar="DIR", help="Watch DIR for .log files")
    parser.add_argument(
        "--output-dir",
        default="./parsed_logs",
        help="Where watch mode writes parsed_<name>.json (default: ./parsed_logs)",
    )
    return parser


def _iter_lines(files):
    if not files:
        yield from sys.stdin
        return
    for path in files:
        with open(path, "r", encoding="utf-8") as f:
            yield from f


def run_once(files, processor: AtlasProcessor, writer: TraceWriter | None, out=None) -> int:
    """Parse every line of *files* (or stdin) and print the results."""
    if out is None:
        out = sys.stdout
    count = 0
    for raw in _iter_lines(files):
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        message = processor.process_message([line])
        if message is None:
            continue
        for part in message:
            print(part, file=out)
        if writer is not None:
            writer.write(message)
        count += 1
    return count


def run_watch(input_dir: str, output_dir: str, processor: AtlasProcessor,
              writer: TraceWriter | None) -> None:
    shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    handler = AtlasFileHandler(output_dir, processor, writer)
    handler.process_existing_files(input_dir)

    observer = Observer()
    observer.schedule(handler, input_dir, recursive=False)
    observer.start()
    logger.info("Watching %s, writing to %s", input_dir, output_dir)

    try:
        while not shutdown_event.wait(1):
            pass
    finally:
        observer.stop()
        observer.join(timeout=5)


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = load_config(args.config)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    processor = AtlasProcessor(config)
    writer = None
    if args.traces:
        writer = TraceWriter(config)
        writer.connect()

    try:
        if args.watch:
            run_watch(args.watch, args.output_dir, processor, writer)
        else:
            n = run_once(args.files, processor, writer)
            logger.info("Parsed %d line(s)", n)
    finally:
        if writer is not None:
            writer.close_async()
            writer.wait_for_close()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(0)
    except BrokenPipeError:
        sys.exit(0)
