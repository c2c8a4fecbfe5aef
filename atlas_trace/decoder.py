"""Field decoder for the message fragments of Atlas lines.

Fragments come in two shapes:

  * embedded JSON, sometimes still escaped by the upstream transport
    (``{\\"uid\\":\\"abc\\"}``)
  * ad hoc ``key=value,key2=value2`` lists
"""

import json
import re

from atlas_trace.errors import FieldDecodeError
from atlas_trace.models import FieldMap

# Raw field names that break decoding upstream
_REWRITES = (
    ("CITY-S", "CITY_S"),
    ("LINE#", "LINENUM"),
)

# Signed decimal integer, the only values promoted to int
_INT_RE = re.compile(r"^[+-]?[0-9]+$")
_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1


def to_int(value: str) -> int | None:
    """Return *value* as int when it is a 64-bit decimal integer, else None."""
    if _INT_RE.match(value):
        number = int(value)
        if _INT64_MIN <= number <= _INT64_MAX:
            return number
    return None


def _coerce(value: str) -> str | int:
    number = to_int(value)
    return value if number is None else number


def decode_kv(fragment: str) -> FieldMap:
    """Decode ``a=1,b=x`` into ``{"a": 1, "b": "x"}``.

    Empty pieces (consecutive commas) are skipped. A piece that does not hold
    exactly one ``=`` fails the whole fragment.
    """
    output: FieldMap = {}
    for piece in fragment.split(","):
        if not piece:
            continue
        if piece.count("=") != 1:
            raise FieldDecodeError(f"Invalid k=v: {piece}")
        key, value = piece.split("=")
        output[key] = _coerce(value)
    return output


def _decode_json(fragment: str) -> FieldMap | None:
    """Try the fragment as JSON, then as the body of a JSON string literal."""
    candidates = [fragment]
    try:
        candidates.append(json.loads('"' + fragment + '"'))
    except json.JSONDecodeError:
        pass

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def unwrap(fragment: str) -> FieldMap:
    """Decode a message fragment into a field map.

    JSON-shaped fragments keep their nesting; the key=value fallback always
    yields a flat map of str/int values.
    """
    for old, new in _REWRITES:
        fragment = fragment.replace(old, new)

    if fragment.lstrip().startswith("{"):
        data = _decode_json(fragment)
        if data is not None:
            return data

    return decode_kv(fragment)
