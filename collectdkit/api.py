"""Core metric data types: values, identifiers, value lists and writers."""

from __future__ import annotations

import abc
import asyncio
import inspect
from collections import Counter as _Tally
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from .meta import Entry, clone as clone_meta

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MAX = (1 << 64) - 1


class _TypedValue:
    """Makes values of different data source types compare unequal."""

    __slots__ = ()

    def __eq__(self, other: object) -> Any:
        if isinstance(other, _TypedValue) and type(other) is not type(self):
            return False
        return super().__eq__(other)

    def __ne__(self, other: object) -> Any:
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({super().__repr__()})"

    def __str__(self) -> str:
        return super().__repr__()


class Gauge(_TypedValue, float):
    """An absolute value, such as a temperature."""

    __slots__ = ()
    __hash__ = float.__hash__


class Derive(_TypedValue, int):
    """A signed 64-bit counter; a decrease is read as a reset."""

    __slots__ = ()
    __hash__ = int.__hash__

    def __new__(cls, value: Any = 0) -> Derive:
        number = int(value)
        if not _INT64_MIN <= number <= _INT64_MAX:
            raise OverflowError(f"{number} does not fit into a derive value")
        return super().__new__(cls, number)


class Counter(_TypedValue, int):
    """An unsigned 64-bit counter; a decrease is read as a wrap-around."""

    __slots__ = ()
    __hash__ = int.__hash__

    def __new__(cls, value: Any = 0) -> Counter:
        number = int(value)
        if not 0 <= number <= _UINT64_MAX:
            raise OverflowError(f"{number} does not fit into a counter value")
        return super().__new__(cls, number)


Value = Gauge | Derive | Counter


def type_name(value: Any) -> str:
    """Return "gauge", "derive" or "counter" for a metric value."""
    if isinstance(value, Gauge):
        return "gauge"
    if isinstance(value, Derive):
        return "derive"
    if isinstance(value, Counter):
        return "counter"
    raise TypeError(f"unexpected data source type: {type(value).__name__}")


@dataclass(frozen=True)
class Identifier:
    """Identifies one metric."""

    host: str = ""
    plugin: str = ""
    plugin_instance: str = ""
    type: str = ""
    type_instance: str = ""

    @classmethod
    def parse(cls, text: str) -> Identifier:
        """Parse "host/plugin[-instance]/type[-instance]"."""
        fields = text.split("/")
        if len(fields) != 3:
            raise ValueError(f"not a valid identifier: {text!r}")
        host, plugin_field, type_field = fields
        plugin, _, plugin_instance = plugin_field.partition("-")
        type_, _, type_instance = type_field.partition("-")
        return cls(
            host=host,
            plugin=plugin,
            plugin_instance=plugin_instance,
            type=type_,
            type_instance=type_instance,
        )

    def __str__(self) -> str:
        plugin = self.plugin
        if self.plugin_instance:
            plugin += "-" + self.plugin_instance
        type_ = self.type
        if self.type_instance:
            type_ += "-" + self.type_instance
        return f"{self.host}/{plugin}/{type_}"


class ValueListError(ValueError):
    """Raised by :meth:`ValueList.check` with every problem found."""

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass
class ValueList:
    """One set of data points of one metric."""

    identifier: Identifier = field(default_factory=Identifier)
    time: datetime | None = None
    interval: timedelta = timedelta(0)
    values: list[Value] = field(default_factory=list)
    ds_names: list[str] | None = None
    meta: dict[str, Entry] | None = None

    def ds_name(self, index: int) -> str:
        """Name of the data source at index.

        Without explicit names, a single value is called "value" and several
        values are named by their index.
        """
        if self.ds_names:
            return self.ds_names[index]
        if len(self.values) != 1:
            return str(index)
        return "value"

    def check(self) -> None:
        """Raise ValueListError listing every problem found in the value list."""
        errors: list[str] = []
        ident = self.identifier
        if not ident.host:
            errors.append("Host is unset")
        if not ident.plugin:
            errors.append("Plugin is unset")
        if "-" in ident.plugin:
            errors.append("Plugin contains '-'")
        if not ident.type:
            errors.append("Type is unset")
        if "-" in ident.type:
            errors.append("Type contains '-'")
        if self.interval == timedelta(0):
            errors.append("Interval is unset")
        if not self.values:
            errors.append("Values is unset")
        names = self.ds_names or []
        if names and self.values and len(names) != len(self.values):
            errors.append(
                f"number of values ({len(self.values)}) and number of DS names "
                f"({len(names)}) don't match"
            )
        for name, count in _Tally(names).items():
            if count != 1:
                errors.append(f'data source name "{name}" is not unique')
        if errors:
            raise ValueListError(errors)

    def clone(self) -> ValueList:
        """Return a copy whose lists and meta data are independent of self."""
        return replace(
            self,
            values=list(self.values),
            ds_names=list(self.ds_names) if self.ds_names is not None else None,
            meta=clone_meta(self.meta),
        )


class Writer(abc.ABC):
    """Accepts value lists for writing, for example to the network."""

    @abc.abstractmethod
    async def write(self, vl: ValueList) -> None:
        """Write one value list."""


class WriterFunc(Writer):
    """A writer backed by a plain or async function taking a value list."""

    def __init__(self, func: Callable[[ValueList], Any]) -> None:
        self._func = func

    async def write(self, vl: ValueList) -> None:
        result = self._func(vl)
        if inspect.isawaitable(result):
            await result


class Fanout(Writer):
    """Writes each value list concurrently to several writers."""

    def __init__(self, writers: Iterable[Writer]) -> None:
        self.writers = list(writers)

    async def write(self, vl: ValueList) -> None:
        """Give every writer its own copy of vl and wait for all of them.

        Failures are collected and raised together as an exception group.
        Cancelling the call cancels all outstanding writers.
        """
        results = await asyncio.gather(
            *(writer.write(vl.clone()) for writer in self.writers),
            return_exceptions=True,
        )
        errors = []
        for writer, result in zip(self.writers, results):
            if isinstance(result, BaseException):
                result.add_note(f"{type(writer).__name__}.write()")
                errors.append(result)
        if errors:
            raise BaseExceptionGroup("fanout write failed", errors)