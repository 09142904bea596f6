"""Formatting of value lists in Graphite's plain text format."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TextIO

from .api import Counter, Derive, Gauge, Identifier, Value, ValueList, Writer

_SPECIAL = ".\t\"\\:!/()\n\r"


def _format_value(value: Value) -> str:
    if isinstance(value, Gauge):
        number = float(value)
        if math.isnan(number):
            return "NaN"
        if math.isinf(number):
            return "+Inf" if number > 0 else "-Inf"
        return f"{number:.15g}"
    if isinstance(value, (Derive, Counter)):
        return str(int(value))
    raise TypeError(f"unexpected type {type(value).__name__}")


@dataclass
class Graphite(Writer):
    """Writes value lists as Graphite lines to a text stream."""

    stream: TextIO
    prefix: str = ""
    suffix: str = ""
    escape_char: str = "_"
    separate_instances: bool = False
    always_append_ds: bool = False

    def escape(self, text: str) -> str:
        """Replace characters that are special to Graphite by escape_char."""
        return text.translate(dict.fromkeys(map(ord, _SPECIAL), self.escape_char))

    def format_name(self, identifier: Identifier, ds_name: str) -> str:
        """Return the metric path for one data source of identifier."""
        separator = "." if self.separate_instances else "-"
        plugin = self.escape(identifier.plugin)
        if identifier.plugin_instance:
            plugin += separator + self.escape(identifier.plugin_instance)
        type_ = identifier.type
        if identifier.type_instance:
            type_ += separator + self.escape(identifier.type_instance)
        name = f"{self.prefix}{self.escape(identifier.host)}{self.suffix}.{plugin}.{type_}"
        if ds_name:
            name += "." + self.escape(ds_name)
        return name

    def format_lines(self, vl: ValueList) -> list[str]:
        """Return one "name value timestamp\\r\\n" line per value.

        A value list without a time is stamped with the current time.
        """
        t = vl.time or datetime.now(timezone.utc)
        timestamp = math.floor(t.timestamp())
        lines = []
        for index, value in enumerate(vl.values):
            ds_name = ""
            if self.always_append_ds or len(vl.values) != 1:
                ds_name = vl.ds_name(index)
            name = self.format_name(vl.identifier, ds_name)
            lines.append(f"{name} {_format_value(value)} {timestamp}\r\n")
        return lines

    async def write(self, vl: ValueList) -> None:
        self.stream.write("".join(self.format_lines(vl)))