"""Exported program variables that are reported periodically as metrics.

Variables are created with :class:`Derive` or :class:`Gauge` (or their
``from_string`` constructors), updated with ``add`` and ``set``, and written by
:func:`run` to any :class:`~collectdkit.api.Writer` at a fixed interval. Each
variable is also registered by the string form of its identifier and can be
looked up with :func:`get`.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import math
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from . import api
from .api import Identifier, ValueList, Writer

log = logging.getLogger(__name__)

_lock = threading.RLock()
_vars: list[Var] = []
_named: dict[str, Var] = {}

_UINT64 = 1 << 64
_INT64_HALF = 1 << 63


class Var(abc.ABC):
    """A metric exported by this module."""

    @abc.abstractmethod
    def value_list(self) -> ValueList:
        """Return the current value as a value list without time or interval."""


def publish(var: Var) -> None:
    """Add var to the list of metrics written by :func:`run`."""
    with _lock:
        _vars.append(var)


def published() -> list[Var]:
    """Return the metrics currently published."""
    with _lock:
        return list(_vars)


def get(name: str) -> Var | None:
    """Return the variable registered under name, or None."""
    with _lock:
        return _named.get(name)


def clear() -> None:
    """Forget all published and registered variables."""
    with _lock:
        _vars.clear()
        _named.clear()


def _register(var: Var, identifier: Identifier) -> None:
    name = str(identifier)
    with _lock:
        if name in _named:
            raise ValueError(f"reuse of exported var name: {name}")
        _named[name] = var
        _vars.append(var)


def _format_float(number: float) -> str:
    """Shortest representation, exponent form below 1e-4 and from 1e6 on."""
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "+Inf" if number > 0 else "-Inf"
    if number == 0:
        return "-0" if math.copysign(1.0, number) < 0 else "0"
    sign = "-" if number < 0 else ""
    dec = Decimal(repr(abs(number))).normalize()
    _, digits, exponent = dec.as_tuple()
    text = "".join(map(str, digits))
    point = len(text) + exponent - 1
    if point < -4 or point >= 6:
        mantissa = text[0] + ("." + text[1:] if len(text) > 1 else "")
        return f"{sign}{mantissa}e{'-' if point < 0 else '+'}{abs(point):02d}"
    return sign + format(dec, "f")


class Derive(Var):
    """A cumulative integer, such as requests served since start. Starts at 0."""

    def __init__(self, identifier: Identifier) -> None:
        self._mutex = threading.Lock()
        self.identifier = identifier
        self._value = api.Derive(0)
        _register(self, identifier)

    @classmethod
    def from_string(cls, text: str) -> Derive:
        """Create a Derive for the identifier written in text."""
        return cls(Identifier.parse(text))

    def add(self, diff: int) -> None:
        """Add diff, wrapping around in the 64-bit signed range."""
        with self._mutex:
            total = int(self._value) + int(diff)
            self._value = api.Derive((total + _INT64_HALF) % _UINT64 - _INT64_HALF)

    def __str__(self) -> str:
        with self._mutex:
            return str(int(self._value))

    def value_list(self) -> ValueList:
        with self._mutex:
            return ValueList(identifier=self.identifier, values=[self._value])


class Gauge(Var):
    """An absolute floating point value, such as memory in use. Starts as NaN."""

    def __init__(self, identifier: Identifier) -> None:
        self._mutex = threading.Lock()
        self.identifier = identifier
        self._value = api.Gauge(math.nan)
        _register(self, identifier)

    @classmethod
    def from_string(cls, text: str) -> Gauge:
        """Create a Gauge for the identifier written in text."""
        return cls(Identifier.parse(text))

    def set(self, value: float) -> None:
        with self._mutex:
            self._value = api.Gauge(float(value))

    def __str__(self) -> str:
        with self._mutex:
            return _format_float(float(self._value))

    def value_list(self) -> ValueList:
        with self._mutex:
            return ValueList(identifier=self.identifier, values=[self._value])


async def run(writer: Writer, interval: timedelta) -> None:
    """Write every published variable to writer once per interval.

    Runs until cancelled. Write failures are logged and do not stop the loop.
    """
    period = interval.total_seconds()
    if period <= 0:
        raise ValueError(f"non-positive interval: {interval}")
    loop = asyncio.get_running_loop()
    deadline = loop.time() + period
    while True:
        await asyncio.sleep(max(0.0, deadline - loop.time()))
        deadline = max(deadline + period, loop.time())
        for var in published():
            vl = var.value_list()
            vl.time = datetime.now(timezone.utc)
            vl.interval = interval
            try:
                await writer.write(vl)
            except Exception as err:
                log.warning("%s.write(): %s", type(writer).__name__, err)