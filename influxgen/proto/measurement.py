"""Line protocol encoding of single tags, fields and timestamps.

Each encoder writes its fragment into a text buffer, anything with a
``write(str)`` method such as ``io.StringIO``.
"""

import math
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol


class SerializationError(RuntimeError):
    """Raised when a value cannot be encoded in the line protocol."""


class TextBuffer(Protocol):
    def write(self, s: str, /) -> Any: ...


_KEY_ESCAPES = str.maketrans({",": "\\,", "=": "\\=", " ": "\\ "})
_STRING_ESCAPES = str.maketrans({"\\": "\\\\", '"': '\\"'})


def escape_key(s: str) -> str:
    """Escape a tag key, tag value or field key."""
    return s.translate(_KEY_ESCAPES)


def escape_string(s: str) -> str:
    """Escape the contents of a string field value."""
    return s.translate(_STRING_ESCAPES)


class Tag:
    """A ``name=value`` tag pair. Tag values are always strings."""

    __slots__ = ("name", "value")

    def __init__(self, name: str, value: str) -> None:
        self.name = name
        self.value = value

    def append(self, v: TextBuffer) -> None:
        v.write(escape_key(self.name))
        v.write("=")
        v.write(escape_key(self.value))


def encode_field_value(value: Any) -> str:
    """Encode a field value according to its Python type."""
    if isinstance(value, Enum):
        value = value.value
    # bool is a subclass of int and must be checked first
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        if not math.isfinite(value):
            raise SerializationError(f"Field value {value!r} is not representable")
        return repr(value)
    if isinstance(value, str):
        return f'"{escape_string(value)}"'
    raise SerializationError(f"Unsupported field value type {type(value).__name__}")


class Field:
    """A ``name=value`` field pair with type-preserving encoding."""

    __slots__ = ("name", "value")

    def __init__(self, name: str, value: Any) -> None:
        self.name = name
        self.value = value

    def append(self, v: TextBuffer) -> None:
        encoded = encode_field_value(self.value)
        v.write(escape_key(self.name))
        v.write("=")
        v.write(encoded)


def to_nanoseconds(value: datetime | int) -> int:
    """Convert a timestamp to integer nanoseconds since the Unix epoch.

    Naive datetimes are taken to be UTC. Integers are already nanoseconds.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        delta = value - datetime(1970, 1, 1, tzinfo=UTC)
        return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise SerializationError(f"Unsupported timestamp type {type(value).__name__}")


class Timestamp:
    """The optional trailing timestamp of a line."""

    __slots__ = ("value",)

    def __init__(self, value: datetime | int) -> None:
        self.value = value

    def append(self, v: TextBuffer) -> None:
        v.write(str(to_nanoseconds(self.value)))
