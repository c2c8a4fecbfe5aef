"""Normalized Atlas record model: all five sub-formats map to this schema.

A record carries exactly one command variant. Each variant class exposes a
``kind`` discriminant, so consumers dispatch on ``record.kind`` instead of
probing optional fields.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Union

# Decoded field maps: flat key=value maps hold str/int values, embedded JSON
# may nest maps arbitrarily deep.
FieldValue = Union[str, int, float, "FieldMap"]
FieldMap = dict[str, Any]


class CommandKind(str, Enum):
    UNPARSED = "unparsed"
    REQUEST = "request"
    RESPONSE = "response"
    ERROR = "error"
    OPUSE = "opuse"
    HOSTLOAD = "hostload"


@dataclass(frozen=True)
class ClientHeader:
    # 363776339/192.168.48.45/52401/414
    message_id: int
    ip: str
    port: int
    socket: int


@dataclass(frozen=True)
class Unparsed:
    raw: str
    kind: ClassVar[CommandKind] = CommandKind.UNPARSED


@dataclass(frozen=True)
class ReqResp:
    # response,10:51:02.620,363776339/192.168.48.45/52401/414,00000BDF|result=0x0,...
    log_time: str
    length_hex: str
    client: ClientHeader
    message: FieldMap = field(default_factory=dict)


@dataclass(frozen=True)
class Request(ReqResp):
    kind: ClassVar[CommandKind] = CommandKind.REQUEST


@dataclass(frozen=True)
class Response(ReqResp):
    kind: ClassVar[CommandKind] = CommandKind.RESPONSE


@dataclass(frozen=True)
class ErrorRecord:
    # error,13:42:56.960,0000016A|<json>
    log_time: str
    length_hex: str
    message: FieldMap = field(default_factory=dict)
    kind: ClassVar[CommandKind] = CommandKind.ERROR


@dataclass(frozen=True)
class OpUse:
    # opuse,14:54:35.450,14:54:35\tCH6\\6\\CartOps\\0\\0\\10\\8\\406347\\406361\\0\\100\\9
    log_time: str
    vax_time: str
    host: str
    portset: int
    usage: str
    usedcur: int
    quecur: int
    usedpeak: int
    quepeak: int
    usedtot: int
    quetot: int
    min: int
    max: int
    ideal: int
    kind: ClassVar[CommandKind] = CommandKind.OPUSE


@dataclass(frozen=True)
class HostLoad:
    # hostload,13:23:35.800,ARZ,0,13:23:34,29
    log_time: str
    vax: str
    load: int
    vax_time: str
    flags: int
    kind: ClassVar[CommandKind] = CommandKind.HOSTLOAD


Command = Union[Unparsed, Request, Response, ErrorRecord, OpUse, HostLoad]

_OPUSE_FIELDS = (
    "log_time", "vax_time", "host", "portset", "usage", "usedcur", "quecur",
    "usedpeak", "quepeak", "usedtot", "quetot", "min", "max", "ideal",
)
_HOSTLOAD_FIELDS = ("log_time", "vax", "load", "vax_time", "flags")


@dataclass(frozen=True)
class AtlasRecord:
    command_type: str
    hostname: str
    timestamp: datetime
    command: Command

    @property
    def kind(self) -> CommandKind:
        return self.command.kind


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def format_timestamp(ts: datetime) -> str:
    """Render an aware datetime as ISO 8601 with a ``Z`` suffix for UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    text = ts.astimezone(timezone.utc).isoformat()
    return text.replace("+00:00", "Z")


def parse_timestamp(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


# ---------------------------------------------------------------------------
# Output schema
# ---------------------------------------------------------------------------


def _client_to_dict(client: ClientHeader) -> dict[str, Any]:
    return {
        "message": client.message_id,
        "ip": client.ip,
        "port": client.port,
        "socket": client.socket,
    }


def command_to_dict(command: Command) -> dict[str, Any]:
    """Encode a command as the ``command`` object of the output schema."""
    if isinstance(command, Unparsed):
        body: Any = command.raw
    elif isinstance(command, ReqResp):
        body = {
            "log_time": command.log_time,
            "client": _client_to_dict(command.client),
            "message_length_hex": command.length_hex,
            "message": command.message,
        }
    elif isinstance(command, ErrorRecord):
        body = {
            "log_time": command.log_time,
            "message_length_hex": command.length_hex,
            "message": command.message,
        }
    elif isinstance(command, OpUse):
        body = {name: getattr(command, name) for name in _OPUSE_FIELDS}
    elif isinstance(command, HostLoad):
        body = {name: getattr(command, name) for name in _HOSTLOAD_FIELDS}
    else:
        raise TypeError(f"Unknown command type: {type(command).__name__}")
    return {command.kind.value: body}


def command_from_dict(data: dict[str, Any]) -> Command:
    """Decode the ``command`` object. Exactly one variant key must be present."""
    if len(data) != 1:
        raise ValueError(f"Expected exactly one command variant, got {sorted(data)}")
    key, body = next(iter(data.items()))
    kind = CommandKind(key)

    if kind is CommandKind.UNPARSED:
        return Unparsed(raw=body)
    if kind in (CommandKind.REQUEST, CommandKind.RESPONSE):
        c = body["client"]
        client = ClientHeader(
            message_id=c["message"], ip=c["ip"], port=c["port"], socket=c["socket"],
        )
        cls = Request if kind is CommandKind.REQUEST else Response
        return cls(
            log_time=body["log_time"],
            length_hex=body["message_length_hex"],
            client=client,
            message=body.get("message") or {},
        )
    if kind is CommandKind.ERROR:
        return ErrorRecord(
            log_time=body["log_time"],
            length_hex=body["message_length_hex"],
            message=body.get("message") or {},
        )
    if kind is CommandKind.OPUSE:
        return OpUse(**{name: body[name] for name in _OPUSE_FIELDS})
    return HostLoad(**{name: body[name] for name in _HOSTLOAD_FIELDS})


def record_to_dict(record: AtlasRecord) -> dict[str, Any]:
    return {
        "command_type": record.command_type,
        "hostname": record.hostname,
        "ts": format_timestamp(record.timestamp),
        "command": command_to_dict(record.command),
    }


def record_from_dict(data: dict[str, Any]) -> AtlasRecord:
    return AtlasRecord(
        command_type=data["command_type"],
        hostname=data["hostname"],
        timestamp=parse_timestamp(data["ts"]),
        command=command_from_dict(data["command"]),
    )


def dumps(record: AtlasRecord) -> str:
    """Serialize a record to compact JSON."""
    return json.dumps(record_to_dict(record), separators=(",", ":"))


def loads(data: str | bytes) -> AtlasRecord:
    """Deserialize JSON produced by :func:`dumps`.

    Raises ValueError (including json.JSONDecodeError), KeyError or TypeError
    when the payload does not match the schema.
    """
    decoded = json.loads(data)
    if not isinstance(decoded, dict):
        raise ValueError(f"Expected a JSON object, got {type(decoded).__name__}")
    return record_from_dict(decoded)
