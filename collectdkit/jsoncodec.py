"""Encoding and decoding of value lists in collectd's JSON export format."""

from __future__ import annotations

import json
import math
from datetime import timedelta
from typing import Any

from . import meta
from .api import Counter, Derive, Gauge, Identifier, Value, ValueList, type_name
from .cdtime import CdTime

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MASK = (1 << 64) - 1


def _encode(obj: Any) -> str:
    text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    # HTML-sensitive characters and line separators are escaped, as the
    # format's reference encoder does.
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def _number_text(value: Value) -> str:
    if isinstance(value, Gauge):
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"unsupported JSON value: {number}")
        return f"{number:.15g}"
    return str(int(value))


def to_json(vl: ValueList) -> str:
    """Encode a value list as a compact JSON object."""
    numbers: list[str] = []
    ds_types: list[str] = []
    ds_names: list[str] = []
    for index, value in enumerate(vl.values):
        ds_types.append(type_name(value))
        numbers.append(_number_text(value))
        ds_names.append(vl.ds_name(index))

    ident = vl.identifier
    fields: list[tuple[str, str]] = [
        ("values", "[" + ",".join(numbers) + "]"),
        ("dstypes", _encode(ds_types)),
    ]
    if ds_names:
        fields.append(("dsnames", _encode(ds_names)))
    fields += [
        ("time", str(CdTime.from_datetime(vl.time))),
        ("interval", str(CdTime.from_timedelta(vl.interval))),
        ("host", _encode(ident.host)),
        ("plugin", _encode(ident.plugin)),
    ]
    if ident.plugin_instance:
        fields.append(("plugin_instance", _encode(ident.plugin_instance)))
    fields.append(("type", _encode(ident.type)))
    if ident.type_instance:
        fields.append(("type_instance", _encode(ident.type_instance)))
    if vl.meta:
        fields.append(("meta", meta.dumps(vl.meta)))

    return "{" + ",".join(f"{_encode(key)}:{text}" for key, text in fields) + "}"


def to_dict(vl: ValueList) -> dict[str, Any]:
    """Return the JSON object for a value list as plain Python data."""
    return json.loads(to_json(vl))


def _text(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {type(value).__name__}")
    return value


def _list(obj: dict[str, Any], key: str, item_type: type | None = None) -> list[Any]:
    value = obj.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key!r} must be an array, got {type(value).__name__}")
    if item_type is not None:
        for item in value:
            if not isinstance(item, item_type):
                raise ValueError(f"field {key!r} must hold {item_type.__name__} items")
    return value


def _time(obj: dict[str, Any], key: str) -> CdTime:
    value = obj.get(key)
    if value is None:
        return CdTime(0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r} must be a number, got {type(value).__name__}")
    return CdTime.from_json(value)


def _integer(number: Any) -> int:
    if isinstance(number, bool) or not isinstance(number, int):
        raise ValueError(f"cannot parse {number!r} as an integer")
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"value {number} is out of range")
    return number


def _parse_value(number: Any, ds_type: str) -> Value:
    match ds_type:
        case "gauge":
            if isinstance(number, bool) or not isinstance(number, (int, float)):
                raise ValueError(f"cannot parse {number!r} as a gauge")
            return Gauge(number)
        case "derive":
            return Derive(_integer(number))
        case "counter":
            return Counter(_integer(number) & _UINT64_MASK)
        case _:
            raise ValueError(f"unexpected data source type: {ds_type!r}")


def from_dict(obj: Any) -> ValueList:
    """Build a value list from a decoded JSON object.

    Derive and counter values must be integers; rates written as floating
    point numbers are rejected.
    """
    if not isinstance(obj, dict):
        raise ValueError(f"value list must be a JSON object, got {type(obj).__name__}")

    identifier = Identifier(
        host=_text(obj, "host"),
        plugin=_text(obj, "plugin"),
        plugin_instance=_text(obj, "plugin_instance"),
        type=_text(obj, "type"),
        type_instance=_text(obj, "type_instance"),
    )
    time = _time(obj, "time").to_datetime()
    interval: timedelta = _time(obj, "interval").to_timedelta()

    raw_values = _list(obj, "values")
    ds_types = _list(obj, "dstypes", str)
    ds_names = _list(obj, "dsnames", str)
    if len(raw_values) != len(ds_types):
        raise ValueError(
            f"invalid data: {len(raw_values)} value(s), "
            f"{len(ds_types)} data source type(s)"
        )
    values = [_parse_value(number, kind) for number, kind in zip(raw_values, ds_types)]

    names = list(ds_names[: len(values)]) if len(ds_names) >= len(values) else None

    raw_meta = obj.get("meta")
    if raw_meta is None:
        meta_data = None
    elif isinstance(raw_meta, dict):
        meta_data = {key: meta.Entry.from_json(value) for key, value in raw_meta.items()}
    else:
        raise ValueError(f"field 'meta' must be an object, got {type(raw_meta).__name__}")

    return ValueList(
        identifier=identifier,
        time=time,
        interval=interval,
        values=values,
        ds_names=names,
        meta=meta_data,
    )


def from_json(data: str | bytes) -> ValueList:
    """Decode a value list from its JSON text."""
    return from_dict(json.loads(data))