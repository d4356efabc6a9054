"""
Value codec for the Hrana protocol.

Converts between native Python values and the JSON wire representation
used for statement arguments and row cells:

- ``null``    -> ``{"type": "null"}``
- ``integer`` -> ``{"type": "integer", "value": "<decimal text>"}``
- ``float``   -> ``{"type": "float", "value": <number>}``
- ``text``    -> ``{"type": "text", "value": "<str>"}``
- ``blob``    -> ``{"type": "blob", "base64": "<base64>"}``

Integers always travel as decimal text so that values beyond 2**53 survive
generic JSON number decoders. The server strips ``=`` padding from blobs, so
decoding re-pads before handing the string to :mod:`base64`.
"""

from __future__ import annotations

import base64
import binascii
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Any, assert_never

from ..exceptions import DecodingError, EncodingError

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER_TEXT = re.compile(r"[+-]?[0-9]+")

Native = None | int | float | str | bytes


class ValueKind(StrEnum):
    """Wire type tag of a value."""

    NULL = "null"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BLOB = "blob"


@dataclass(frozen=True)
class Value:
    """
    Tagged value as carried by statement arguments and result rows.

    Attributes:
        kind: Wire type tag
        payload: Native payload (``None`` for null, ``int``, ``float``, ``str`` or ``bytes``)
    """

    kind: ValueKind
    payload: Native = None

    @classmethod
    def null(cls) -> Value:
        return cls(ValueKind.NULL)

    @classmethod
    def integer(cls, value: int) -> Value:
        if not INT64_MIN <= value <= INT64_MAX:
            raise EncodingError(f"Integer {value} is outside the signed 64-bit range")
        return cls(ValueKind.INTEGER, value)

    @classmethod
    def real(cls, value: float) -> Value:
        if math.isnan(value) or math.isinf(value):
            raise EncodingError(f"Float {value!r} has no JSON representation")
        return cls(ValueKind.FLOAT, value)

    @classmethod
    def text(cls, value: str) -> Value:
        return cls(ValueKind.TEXT, value)

    @classmethod
    def blob(cls, value: bytes) -> Value:
        return cls(ValueKind.BLOB, bytes(value))

    @classmethod
    def from_native(cls, value: Any) -> Value:
        """
        Build a tagged value from a native Python value.

        Raises:
            EncodingError: If the value has no wire representation
        """
        if isinstance(value, Value):
            return value
        if value is None:
            return cls.null()
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return cls.integer(1 if value else 0)
        if isinstance(value, int):
            return cls.integer(value)
        if isinstance(value, float):
            return cls.real(value)
        if isinstance(value, Decimal):
            return cls.real(float(value))
        if isinstance(value, str):
            return cls.text(value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls.blob(bytes(value))
        raise EncodingError(f"Cannot encode value of type {type(value).__name__}")

    def to_native(self) -> Native:
        """Return the native payload."""
        return self.payload

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON wire representation."""
        match self.kind:
            case ValueKind.NULL:
                return {"type": "null"}
            case ValueKind.INTEGER:
                return {"type": "integer", "value": str(self.payload)}
            case ValueKind.FLOAT:
                return {"type": "float", "value": self.payload}
            case ValueKind.TEXT:
                return {"type": "text", "value": self.payload}
            case ValueKind.BLOB:
                assert isinstance(self.payload, bytes)
                return {"type": "blob", "base64": base64.b64encode(self.payload).decode("ascii")}
            case _:
                assert_never(self.kind)

    @classmethod
    def from_wire(cls, data: Any, expected_kind: ValueKind | None = None) -> Value:
        """
        Parse a wire value.

        Args:
            data: Decoded JSON object for one value
            expected_kind: Kind the caller expects; ``null`` is always accepted

        Raises:
            DecodingError: If the value is malformed or of an unexpected kind
        """
        if not isinstance(data, dict):
            raise DecodingError(f"Expected a value object, got {type(data).__name__}")

        tag = data.get("type")
        try:
            kind = ValueKind(tag)
        except ValueError:
            raise DecodingError(f"Unknown value type {tag!r}") from None

        if expected_kind is not None and kind is not ValueKind.NULL and kind is not expected_kind:
            raise DecodingError(f"Expected a {expected_kind} value, got {kind}")

        match kind:
            case ValueKind.NULL:
                return cls.null()
            case ValueKind.INTEGER:
                return cls(kind, _decode_integer(data.get("value")))
            case ValueKind.FLOAT:
                return cls(kind, _decode_float(data.get("value")))
            case ValueKind.TEXT:
                text = data.get("value")
                if not isinstance(text, str):
                    raise DecodingError(f"Text value must be a string, got {type(text).__name__}")
                return cls(kind, text)
            case ValueKind.BLOB:
                encoded = data.get("base64", data.get("value"))
                if not isinstance(encoded, str):
                    raise DecodingError("Blob value is missing its base64 payload")
                return cls(kind, decode_base64(encoded))
            case _:
                assert_never(kind)


def _decode_integer(raw: Any) -> int:
    if isinstance(raw, bool):
        raise DecodingError("Integer value must be decimal text, got a boolean")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip()
        # int() would also accept "1_000" and non-ASCII digits
        if not _INTEGER_TEXT.fullmatch(text):
            raise DecodingError(f"Invalid integer text {raw!r}")
        value = int(text)
    else:
        raise DecodingError(f"Integer value must be decimal text, got {type(raw).__name__}")
    if not INT64_MIN <= value <= INT64_MAX:
        raise DecodingError(f"Integer {value} is outside the signed 64-bit range")
    return value


def _decode_float(raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise DecodingError(f"Float value must be a number, got {type(raw).__name__}")
    return float(raw)


def decode_base64(encoded: str) -> bytes:
    """
    Decode standard base64, tolerating missing ``=`` padding.

    Raises:
        DecodingError: If the text is not valid base64
    """
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodingError(f"Invalid base64 blob data {encoded!r}: {e}") from e


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a native value (or :class:`Value`) to its wire representation."""
    return Value.from_native(value).to_wire()


def decode_value(data: Any, expected_kind: ValueKind | None = None) -> Native:
    """Decode a wire value to its native payload."""
    return Value.from_wire(data, expected_kind).to_native()


__all__ = [
    "INT64_MAX",
    "INT64_MIN",
    "Native",
    "Value",
    "ValueKind",
    "decode_base64",
    "decode_value",
    "encode_value",
]
