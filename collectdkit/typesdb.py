"""Parsing and querying of types.db(5) data set definitions."""

from __future__ import annotations

import enum
import io
import math
import numbers
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable

from .api import Counter, Derive, Gauge, Identifier, Value, ValueList

_UINT64 = 1 << 64
_INT64_HALF = 1 << 63


class NoDatasetError(LookupError):
    """The requested data set is not defined."""

    def __init__(self, name: str = "") -> None:
        super().__init__(f"no such dataset: {name!r}" if name else "no such dataset")
        self.name = name


class DSType(enum.Enum):
    """Kind of a data source."""

    COUNTER = "COUNTER"
    DERIVE = "DERIVE"
    GAUGE = "GAUGE"

    @property
    def value_class(self) -> type:
        return _CLASSES[self]


_CLASSES: dict[DSType, type] = {
    DSType.COUNTER: Counter,
    DSType.DERIVE: Derive,
    DSType.GAUGE: Gauge,
}


def _parse_limit(text: str) -> float:
    if text == "U":
        return math.nan
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"invalid limit {text!r}") from None


@dataclass
class DataSource:
    """One metric within a data set.

    min and max apply to the rate of counters and derives; NaN means unbounded.
    """

    name: str
    type: DSType
    min: float = math.nan
    max: float = math.nan

    @classmethod
    def parse(cls, text: str) -> DataSource:
        """Parse "name:TYPE:min:max", ignoring a trailing comma."""
        fields = text.removesuffix(",").split(":")
        if len(fields) != 4:
            raise ValueError(f"unexpected field count: {len(fields)}")
        name, kind, low, high = fields
        try:
            ds_type = DSType(kind)
        except ValueError:
            raise ValueError(f"invalid data source type {kind!r}") from None
        return cls(name, ds_type, _parse_limit(low), _parse_limit(high))

    def value(self, arg: Any) -> Value:
        """Convert a number to this source's value type.

        Floats are truncated for counters and derives; integers wrap around
        to the 64-bit range of the target type.
        """
        if isinstance(arg, bool) or not isinstance(arg, numbers.Real):
            raise TypeError(
                f"cannot convert {type(arg).__name__} to {self.type.value_class.__name__}"
            )
        match self.type:
            case DSType.GAUGE:
                return Gauge(float(arg))
            case DSType.DERIVE:
                number = math.trunc(arg)
                return Derive((number + _INT64_HALF) % _UINT64 - _INT64_HALF)
            case DSType.COUNTER:
                return Counter(math.trunc(arg) % _UINT64)
        raise ValueError(f"unexpected data source type {self.type}")


@dataclass
class DataSet:
    """The data sources of one type."""

    name: str
    sources: list[DataSource] = field(default_factory=list)

    @classmethod
    def parse(cls, line: str) -> DataSet:
        """Parse one types.db line: a name followed by data source specs."""
        tokens = line.split()
        if not tokens:
            return cls("")
        name, *specs = tokens
        return cls(name, [DataSource.parse(spec) for spec in specs])

    def names(self) -> list[str]:
        return [source.name for source in self.sources]

    def values(self, *args: Any) -> list[Value]:
        """Convert one argument per data source into typed values."""
        if len(args) != len(self.sources):
            raise ValueError(f"len(args) = {len(args)}, want {len(self.sources)}")
        return [source.value(arg) for source, arg in zip(self.sources, args)]

    def check(self, vl: ValueList) -> None:
        """Raise ValueError if vl does not match this data set."""
        if self.name != vl.identifier.type:
            raise ValueError(f"vl.Type = {vl.identifier.type!r}, want {self.name!r}")
        if len(self.sources) != len(vl.values):
            raise ValueError(
                f"len(vl.Values) = {len(vl.values)}, want {len(self.sources)}"
            )
        names = vl.ds_names or []
        if len(self.sources) != len(names):
            raise ValueError(f"len(vl.DSNames) = {len(names)}, want {len(self.sources)}")
        for index, (source, name, value) in enumerate(zip(self.sources, names, vl.values)):
            if source.name != name:
                raise ValueError(f"vl.DSNames[{index}] = {name!r}, want {source.name!r}")
            want = source.type.value_class
            if type(value) is not want:
                raise ValueError(
                    f"vl.Values[{index}] is a {type(value).__name__}, want {want.__name__}"
                )


class TypesDB:
    """Type definitions read from one or more types.db files."""

    def __init__(self) -> None:
        self._rows: dict[str, DataSet] = {}

    @classmethod
    def load(cls, stream: Iterable[str] | str) -> TypesDB:
        """Read definitions from lines of text; malformed lines are skipped."""
        if isinstance(stream, str):
            stream = io.StringIO(stream)
        db = cls()
        for raw in stream:
            line = raw.removesuffix("\n").removesuffix("\r")
            if not line or line.startswith("#"):
                continue
            try:
                data_set = DataSet.parse(line)
            except ValueError:
                continue
            db._rows[data_set.name] = data_set
        return db

    def merge(self, other: TypesDB) -> None:
        """Add all of other's entries, replacing those with the same name."""
        self._rows.update(other._rows)

    def dataset(self, name: str) -> DataSet | None:
        """Return the data set called name, or None."""
        return self._rows.get(name)

    def value_list(
        self,
        identifier: Identifier,
        time: datetime | None,
        interval: timedelta,
        *args: Any,
    ) -> ValueList:
        """Build a value list for identifier, typing args by its data set."""
        data_set = self.dataset(identifier.type)
        if data_set is None:
            raise NoDatasetError(identifier.type)
        return ValueList(
            identifier=identifier,
            time=time,
            interval=interval,
            values=data_set.values(*args),
            ds_names=data_set.names(),
        )