"""Parsers for the Atlas log line and its five sub-formats.

Line layout::

    Aug 22 15:18:32 atl2.shared.phx2 atlas: response,10:51:02.620,...
    |-- 15 chars --| |-- hostname --| label |------- payload ------...

Dispatch order on the payload:
  1. ``response,`` / ``request,`` -> request/response parser
  2. ``error,``                   -> error parser
  3. ``opuse,``                   -> operator usage parser
  4. ``hostload,``                -> host load parser
  5. anything else                -> unparsed

A sub-parser failure demotes the line to unparsed. Only a timestamp that
cannot be read fails the whole line.
"""

import logging
from datetime import datetime, timedelta, timezone

from atlas_trace.decoder import to_int, unwrap
from atlas_trace.errors import (
    FieldDecodeError,
    MalformedLineError,
    TimestampError,
    UnrecognizedFormatError,
)
from atlas_trace.models import (
    AtlasRecord,
    ClientHeader,
    ErrorRecord,
    FieldMap,
    HostLoad,
    OpUse,
    Request,
    Response,
    Unparsed,
    dumps,
)

logger = logging.getLogger(__name__)

TIMESTAMP_WIDTH = 15
TIMESTAMP_FORMAT = "%Y %b %d %H:%M:%S"

# Lines stamped further than this ahead of "now" belong to the previous year
_ROLLOVER_SLACK = timedelta(days=1)

# Transport-escaped tab between the opuse header and its data block
_OPUSE_TAB = "\\t"
_OPUSE_ESCAPED_FIELDS = 23
_OPUSE_PLAIN_FIELDS = 12


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_int(value: str, name: str) -> int:
    number = to_int(value)
    if number is None:
        raise UnrecognizedFormatError(f"Field '{name}' is not an integer: {value!r}")
    return number


def split_header(line: str) -> tuple[str, str, str]:
    """Split a raw line into (timestamp_text, hostname, payload)."""
    if len(line) <= TIMESTAMP_WIDTH:
        raise MalformedLineError(f"Line too short for a timestamp: {line!r}")

    ts_text = line[:TIMESTAMP_WIDTH]
    hostname, sep, payload = line[TIMESTAMP_WIDTH + 1:].partition(" ")
    if not sep or not hostname:
        raise MalformedLineError(f"No hostname/payload separator in {line!r}")
    return ts_text, hostname, payload


def split_component(payload: str) -> tuple[str, str]:
    """Split ``atlas: response,...`` into ("atlas:", "response,...")."""
    label, sep, body = payload.partition(" ")
    if not sep:
        raise MalformedLineError(f"No component label in {payload!r}")
    return label, body


def parse_timestamp(ts_text: str, now: datetime | None = None) -> datetime:
    """Parse ``Aug 22 15:18:32`` with the current year injected (UTC).

    A December line read in early January would land almost a year in the
    future; such timestamps are moved back to the previous year.
    """
    now = now or datetime.now(timezone.utc)
    try:
        ts = datetime.strptime(f"{now.year} {ts_text}", TIMESTAMP_FORMAT)
    except ValueError as exc:
        raise TimestampError(f"Invalid timestamp {ts_text!r}: {exc}") from exc
    ts = ts.replace(tzinfo=timezone.utc)

    if ts - now > _ROLLOVER_SLACK:
        try:
            ts = ts.replace(year=now.year - 1)
        except ValueError as exc:
            # Feb 29 does not exist in the previous year
            raise TimestampError(f"Invalid timestamp {ts_text!r}: {exc}") from exc
    return ts


def parse_client_header(header: str) -> ClientHeader:
    """Parse ``message_id/ip/port/socket``."""
    parts = header.split("/")
    if len(parts) != 4:
        raise UnrecognizedFormatError(f"Invalid number of parts in {header!r}")
    return ClientHeader(
        message_id=_to_int(parts[0], "message"),
        ip=parts[1],
        port=_to_int(parts[2], "port"),
        socket=_to_int(parts[3], "socket"),
    )


# ---------------------------------------------------------------------------
# Sub-format parsers
# ---------------------------------------------------------------------------


def parse_reqresp(payload: str) -> tuple[str, Request | Response]:
    """header|message1|message2|...

    header: command, log_time, message_id/ip/port/socket, length_hex
    """
    parts = payload.split("|")
    if len(parts) < 2:
        raise UnrecognizedFormatError(f"No messages found in {payload!r}")

    header = parts[0].split(",")
    if len(header) != 4:
        raise UnrecognizedFormatError(f"Invalid number of header parts in {parts[0]!r}")
    command_type, log_time, client_quad, length_hex = header
    client = parse_client_header(client_quad)

    if parts[1].startswith("{"):
        message = unwrap(parts[1])
    else:
        message = {}
        for i, fragment in enumerate(parts[1:]):
            key = "header" if i == 0 else f"command{i}"
            message[key] = unwrap(fragment)

    cls = Request if command_type == "request" else Response
    return command_type, cls(
        log_time=log_time, length_hex=length_hex, client=client, message=message,
    )


def parse_error(payload: str) -> tuple[str, ErrorRecord]:
    """error,log_time,length_hex|fragment|fragment..."""
    parts = payload.split("|")
    if len(parts) < 2:
        raise UnrecognizedFormatError(f"No messages found in {payload!r}")

    header = parts[0].split(",")
    if len(header) != 3:
        raise UnrecognizedFormatError(f"Invalid number of error header parts in {parts[0]!r}")
    command_type, log_time, length_hex = header

    message: FieldMap = {}
    for fragment in parts[1:]:
        message.update(unwrap(fragment))

    return command_type, ErrorRecord(log_time=log_time, length_hex=length_hex, message=message)


def parse_opuse(payload: str) -> tuple[str, OpUse]:
    """opuse,log_time,vax_time\\t<backslash separated data block>"""
    parts = payload.split(_OPUSE_TAB)
    if len(parts) != 2:
        raise UnrecognizedFormatError(f"Expected header and data block in {payload!r}")

    header = parts[0].split(",")
    if len(header) != 3:
        raise UnrecognizedFormatError(f"Invalid number of opuse header parts in {parts[0]!r}")
    command_type, log_time, vax_time = header

    fields = parts[1].split("\\")
    if len(fields) == _OPUSE_ESCAPED_FIELDS:
        # Escaped separators leave an empty field between every value
        fields = fields[::2]
    elif len(fields) != _OPUSE_PLAIN_FIELDS:
        raise UnrecognizedFormatError(f"Invalid amount of fields in {parts[1]!r}")

    (host, portset, usage, usedcur, quecur, usedpeak,
     quepeak, usedtot, quetot, min_, max_, ideal) = fields

    return command_type, OpUse(
        log_time=log_time,
        vax_time=vax_time,
        host=host,
        portset=_to_int(portset, "portset"),
        usage=usage,
        usedcur=_to_int(usedcur, "usedcur"),
        quecur=_to_int(quecur, "quecur"),
        usedpeak=_to_int(usedpeak, "usedpeak"),
        quepeak=_to_int(quepeak, "quepeak"),
        usedtot=_to_int(usedtot, "usedtot"),
        quetot=_to_int(quetot, "quetot"),
        min=_to_int(min_, "min"),
        max=_to_int(max_, "max"),
        ideal=_to_int(ideal, "ideal"),
    )


def parse_hostload(payload: str) -> tuple[str, HostLoad]:
    """hostload,13:24:05.630,ARZ,0,13:24:04,29"""
    parts = payload.split(",")
    if len(parts) != 6:
        raise UnrecognizedFormatError(f"Invalid number of parts in {payload!r}")

    command_type, log_time, vax, load, vax_time, flags = parts
    return command_type, HostLoad(
        log_time=log_time,
        vax=vax,
        load=_to_int(load, "load"),
        vax_time=vax_time,
        flags=_to_int(flags, "flags"),
    )


def parse_unparsed(payload: str) -> tuple[str, Unparsed]:
    command_type = payload.split(",", 1)[0] or "unparsed"
    return command_type, Unparsed(raw=payload)


_DISPATCH = (
    (("response,", "request,"), parse_reqresp),
    (("error,",), parse_error),
    (("opuse,",), parse_opuse),
    (("hostload,",), parse_hostload),
)


def parse_payload(payload: str):
    """Dispatch *payload* to its sub-parser. Never raises for format problems."""
    for prefixes, parser in _DISPATCH:
        if payload.startswith(prefixes):
            try:
                return parser(payload)
            except (UnrecognizedFormatError, FieldDecodeError) as exc:
                logger.debug("Demoting to unparsed: %s", exc)
                break
    return parse_unparsed(payload)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def parse_line(line: str, now: datetime | None = None) -> AtlasRecord:
    """Parse one raw Atlas line into an AtlasRecord.

    Raises MalformedLineError when the line has no header, TimestampError when
    the timestamp cannot be read. Everything else ends up as a record.
    """
    ts_text, hostname, rest = split_header(line)
    _label, payload = split_component(rest)

    command_type, command = parse_payload(payload)
    timestamp = parse_timestamp(ts_text, now)

    return AtlasRecord(
        command_type=command_type,
        hostname=hostname,
        timestamp=timestamp,
        command=command,
    )


def parse_line_json(line: str, now: datetime | None = None) -> str:
    """Parse one raw line and return the serialized record."""
    return dumps(parse_line(line, now))
