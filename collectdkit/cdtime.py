"""Conversion from and to collectd's fixed-point time representation.

A time value is a 64-bit unsigned integer holding seconds in the upper 34 bits
and a binary fraction of a second in the lower 30 bits.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

_MASK = (1 << 64) - 1
_NS_PER_SECOND = 1_000_000_000
_FRACTION_MASK = 0x3FFFFFFF
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _from_nanos(ns: int) -> int:
    ns &= _MASK
    # Split first so that the shift cannot overflow.
    seconds = ((ns // _NS_PER_SECOND) << 30) & _MASK
    fraction = (((ns % _NS_PER_SECOND) << 30) + 500_000_000) // _NS_PER_SECOND
    return seconds | fraction


def _timedelta_nanos(td: timedelta) -> int:
    return (td.days * 86400 + td.seconds) * _NS_PER_SECOND + td.microseconds * 1000


@dataclass(frozen=True, order=True)
class CdTime:
    """A point in time or a duration in collectd's internal format."""

    value: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"CdTime value must be an int, got {type(self.value).__name__}")
        if not 0 <= self.value <= _MASK:
            raise ValueError(f"CdTime value {self.value} is out of range")

    def __int__(self) -> int:
        return self.value

    def _decompose(self) -> tuple[int, int]:
        seconds = self.value >> 30
        # Adding 2^29 rounds to the nearest nanosecond.
        nanos = ((self.value & _FRACTION_MASK) * _NS_PER_SECOND + (1 << 29)) >> 30
        return seconds, nanos

    @classmethod
    def from_unix_ns(cls, ns: int) -> CdTime:
        """Time from nanoseconds since the epoch."""
        return cls(_from_nanos(ns))

    @classmethod
    def from_datetime(cls, dt: datetime | None) -> CdTime:
        """Time from a datetime; None maps to zero. Naive values are local time."""
        if dt is None:
            return cls(0)
        if dt.tzinfo is None:
            dt = dt.astimezone()
        return cls(_from_nanos(_timedelta_nanos(dt - _EPOCH)))

    @classmethod
    def from_duration_ns(cls, ns: int) -> CdTime:
        """Duration from a number of nanoseconds."""
        return cls(_from_nanos(ns))

    @classmethod
    def from_timedelta(cls, td: timedelta) -> CdTime:
        return cls(_from_nanos(_timedelta_nanos(td)))

    def to_unix_ns(self) -> int:
        seconds, nanos = self._decompose()
        return seconds * _NS_PER_SECOND + nanos

    def to_datetime(self) -> datetime | None:
        """Return an aware UTC datetime, or None for the zero value."""
        if self.value == 0:
            return None
        seconds, nanos = self._decompose()
        return _EPOCH + timedelta(seconds=seconds, microseconds=(nanos + 500) // 1000)

    def to_duration_ns(self) -> int:
        return self.to_unix_ns()

    def to_timedelta(self) -> timedelta:
        seconds, nanos = self._decompose()
        return timedelta(seconds=seconds, microseconds=(nanos + 500) // 1000)

    def to_float(self) -> float:
        """Seconds as a float; roughly microsecond precision."""
        seconds, nanos = self._decompose()
        return seconds + nanos / 1e9

    def to_json(self) -> str:
        """JSON number literal with millisecond precision."""
        return str(self)

    @classmethod
    def from_json(cls, text: str | bytes | float | int) -> CdTime:
        """Parse a number of seconds as written by :meth:`to_json`."""
        if isinstance(text, bytes):
            text = text.decode()
        number = float(text)
        if not math.isfinite(number) or number < 0:
            raise ValueError(f"invalid time value: {text!r}")
        seconds = int(number)
        nanos = int((number - seconds) * 1e9)
        return cls(_from_nanos(_NS_PER_SECOND * seconds + nanos))

    def __str__(self) -> str:
        return f"{self.to_float():.3f}"