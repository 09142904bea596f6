"""Typed meta data entries that can be attached to value lists."""

from __future__ import annotations

import enum
import json
import math
import operator
from dataclasses import dataclass
from typing import Any

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1
UINT64_MAX = (1 << 64) - 1

Data = dict[str, "Entry"]


class EntryType(enum.Enum):
    """The kind of value an :class:`Entry` holds."""

    NONE = "<nil>"
    STRING = "string"
    INT64 = "int64"
    UINT64 = "uint64"
    FLOAT64 = "float64"
    BOOL = "bool"


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return f"{value:.15g}"


@dataclass(frozen=True)
class Entry:
    """One meta data value: a bool, float64, int64, uint64 or string.

    The default-constructed entry holds no value at all.
    """

    kind: EntryType = EntryType.NONE
    value: Any = None

    @classmethod
    def from_bool(cls, value: bool) -> Entry:
        return cls(EntryType.BOOL, bool(value))

    @classmethod
    def from_float(cls, value: float) -> Entry:
        return cls(EntryType.FLOAT64, float(value))

    @classmethod
    def from_int64(cls, value: int) -> Entry:
        number = operator.index(value)
        if not INT64_MIN <= number <= INT64_MAX:
            raise ValueError(f"{number} does not fit into an int64")
        return cls(EntryType.INT64, number)

    @classmethod
    def from_uint64(cls, value: int) -> Entry:
        number = operator.index(value)
        if not 0 <= number <= UINT64_MAX:
            raise ValueError(f"{number} does not fit into a uint64")
        return cls(EntryType.UINT64, number)

    @classmethod
    def from_string(cls, value: str) -> Entry:
        return cls(EntryType.STRING, str(value))

    def _value_of(self, kind: EntryType) -> Any:
        return self.value if self.kind is kind else None

    def as_bool(self) -> bool | None:
        """Return the bool value, or None if the entry is not a bool."""
        return self._value_of(EntryType.BOOL)

    def as_float(self) -> float | None:
        """Return the float value, or None if the entry is not a float64."""
        return self._value_of(EntryType.FLOAT64)

    def as_int64(self) -> int | None:
        """Return the int64 value, or None if the entry is not an int64."""
        return self._value_of(EntryType.INT64)

    def as_uint64(self) -> int | None:
        """Return the uint64 value, or None if the entry is not a uint64."""
        return self._value_of(EntryType.UINT64)

    def is_string(self) -> bool:
        return self.kind is EntryType.STRING

    def type_name(self) -> str:
        """Name of the held type, "<nil>" for an empty entry."""
        return self.kind.value

    def to_json(self) -> Any:
        """Return a JSON-compatible object; NaN becomes None."""
        if self.kind is EntryType.FLOAT64:
            if math.isnan(self.value):
                return None
            if math.isinf(self.value):
                raise ValueError(f"unsupported JSON value: {self.value}")
        return self.value

    @classmethod
    def from_json(cls, obj: Any) -> Entry:
        """Build an entry from a decoded JSON value; null becomes NaN."""
        if isinstance(obj, bool):
            return cls.from_bool(obj)
        if isinstance(obj, str):
            return cls.from_string(obj)
        if isinstance(obj, int):
            if INT64_MIN <= obj <= INT64_MAX:
                return cls.from_int64(obj)
            if 0 <= obj <= UINT64_MAX:
                return cls.from_uint64(obj)
            return cls.from_float(float(obj))
        if isinstance(obj, float):
            return cls.from_float(obj)
        if obj is None:
            return cls.from_float(math.nan)
        raise ValueError(f"unable to parse {obj!r} as meta entry")

    def __str__(self) -> str:
        match self.kind:
            case EntryType.BOOL:
                return "true" if self.value else "false"
            case EntryType.FLOAT64:
                return _format_float(self.value)
            case EntryType.INT64 | EntryType.UINT64:
                return str(self.value)
            case EntryType.STRING:
                return self.value
            case _:
                return "<nil>"


def clone(data: Data | None) -> Data | None:
    """Return a shallow copy of a meta data mapping, or None for None."""
    if data is None:
        return None
    return dict(data)


def dumps(data: Data | None) -> str:
    """Encode meta data as compact JSON with sorted keys."""
    if data is None:
        return "null"
    obj = {key: entry.to_json() for key, entry in data.items()}
    return json.dumps(
        obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False, allow_nan=False
    )


def loads(text: str | bytes) -> Data | None:
    """Decode meta data from a JSON object."""
    obj = json.loads(text)
    if obj is None:
        return None
    if not isinstance(obj, dict):
        raise ValueError(f"meta data must be a JSON object, got {type(obj).__name__}")
    return {key: Entry.from_json(value) for key, value in obj.items()}