"""Formatting of value lists as PUTVAL lines of the plain text protocol."""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime
from typing import TextIO

from .api import Counter, Derive, Gauge, ValueList, Writer
from .meta import Entry

log = logging.getLogger(__name__)

_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    "\\": "\\\\",
    '"': '\\"',
}

_non_string_warned = threading.Event()


def _quote(text: str) -> str:
    parts = []
    for char in text:
        code = ord(char)
        if char in _ESCAPES:
            parts.append(_ESCAPES[char])
        elif char.isprintable():
            parts.append(char)
        elif code < 0x80:
            parts.append(f"\\x{code:02x}")
        elif code < 0x10000:
            parts.append(f"\\u{code:04x}")
        else:
            parts.append(f"\\U{code:08x}")
    return '"' + "".join(parts) + '"'


def _gauge_text(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return f"{value:.15g}"


def format_time(t: datetime | None) -> str:
    """Seconds since the epoch with millisecond precision, "N" for no time."""
    if t is None:
        return "N"
    return f"{t.timestamp():.3f}"


def format_values(vl: ValueList) -> str:
    """Return "time:value[:value...]" for vl."""
    fields = [format_time(vl.time)]
    for value in vl.values:
        if isinstance(value, (Counter, Derive)):
            fields.append(str(int(value)))
        elif isinstance(value, Gauge):
            fields.append(_gauge_text(float(value)))
        else:
            raise TypeError(f"unexpected type {type(value).__name__}")
    return ":".join(fields)


def format_meta(data: dict[str, Entry] | None) -> str:
    """Return "meta:key=\"value\" " options for string entries; others are skipped."""
    if not data:
        return ""
    options = []
    for key, entry in data.items():
        if not entry.is_string():
            if not _non_string_warned.is_set():
                _non_string_warned.set()
                log.warning("Non-string metadata not supported yet")
            continue
        options.append(f"meta:{key}={_quote(str(entry))} ")
    return "".join(options)


def format_line(vl: ValueList) -> str:
    """Return the complete PUTVAL line for vl, including the newline."""
    values = format_values(vl)
    interval = vl.interval.total_seconds()
    return (
        f"PUTVAL {_quote(str(vl.identifier))} interval={interval:.3f} "
        f"{format_meta(vl.meta)}{values}\n"
    )


class Putval(Writer):
    """Writes value lists as PUTVAL lines to a text stream."""

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream

    async def write(self, vl: ValueList) -> None:
        self.stream.write(format_line(vl))