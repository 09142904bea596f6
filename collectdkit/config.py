"""Plugin configuration blocks and their mapping onto dataclasses.

A :class:`Block` has a key, optional values and optional nested blocks. In
collectd's configuration syntax this looks like::

    <Key "Value">
      Child "child value"
    </Key>

:meth:`Block.unmarshal` maps a block onto a dataclass instance. A block's
values go into the field named ``args``; each child block goes into the field
whose name matches the child's key, ignoring case and underscores, so that the
key ``KeepAlive`` fills the field ``keep_alive``.
"""

from __future__ import annotations

import abc
import dataclasses
import enum
import math
import numbers
import socket
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterator, get_args, get_origin

_PORT_MAX = 65535

# Well-known TCP services, used when the system's services database lacks them.
_KNOWN_SERVICES = {
    "ftp": 21,
    "ftps": 990,
    "gopher": 70,
    "http": 80,
    "https": 443,
    "imap2": 143,
    "imap3": 220,
    "imaps": 993,
    "pop3": 110,
    "pop3s": 995,
    "smtp": 25,
    "submissions": 465,
    "ssh": 22,
    "telnet": 23,
}

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

_SCALAR_NAMES = {"str": str, "int": int, "float": float, "bool": bool}


class ConfigError(ValueError):
    """A configuration cannot be merged or mapped onto the target."""


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


def _format_number(number: float) -> str:
    """Shortest representation; exponent form below 1e-4 and from 1e21 on."""
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
    if point < -4 or point >= 21:
        mantissa = text[0] + ("." + text[1:] if len(text) > 1 else "")
        return f"{sign}{mantissa}e{'-' if point < 0 else '+'}{abs(point):02d}"
    return sign + format(dec, "f")


class ValueKind(enum.Enum):
    """The type of a configuration value."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class Value:
    """A string, number or boolean configuration value.

    The default value is the empty string.
    """

    kind: ValueKind = ValueKind.STRING
    value: str | float | bool = ""

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ValueKind):
            raise TypeError(f"invalid value kind: {self.kind!r}")
        match self.kind:
            case ValueKind.STRING:
                if not isinstance(self.value, str):
                    raise TypeError(f"string value expected, got {type(self.value).__name__}")
            case ValueKind.BOOLEAN:
                if not isinstance(self.value, bool):
                    raise TypeError(f"bool value expected, got {type(self.value).__name__}")
            case ValueKind.NUMBER:
                if isinstance(self.value, bool) or not isinstance(self.value, numbers.Real):
                    raise TypeError(f"number value expected, got {type(self.value).__name__}")
                object.__setattr__(self, "value", float(self.value))

    @classmethod
    def string(cls, value: str) -> Value:
        return cls(ValueKind.STRING, value)

    @classmethod
    def float(cls, value: Any) -> Value:
        return cls(ValueKind.NUMBER, float(value))

    @classmethod
    def bool(cls, value: Any) -> Value:
        return cls(ValueKind.BOOLEAN, bool(value))

    def is_string(self) -> bool:
        return self.kind is ValueKind.STRING

    def as_float(self) -> Any:
        """Return the number, or None if this is not a number value."""
        return self.value if self.kind is ValueKind.NUMBER else None

    def as_bool(self) -> Any:
        """Return the boolean, or None if this is not a boolean value."""
        return self.value if self.kind is ValueKind.BOOLEAN else None

    def interface(self) -> Any:
        """Return the plain Python value."""
        return self.value

    def __str__(self) -> str:
        match self.kind:
            case ValueKind.NUMBER:
                return _format_number(self.value)
            case ValueKind.BOOLEAN:
                return "true" if self.value else "false"
            case _:
                return self.value

    def __repr__(self) -> str:
        match self.kind:
            case ValueKind.NUMBER:
                return f"Value.float({self.value!r})"
            case ValueKind.BOOLEAN:
                return f"Value.bool({self.value!r})"
            case _:
                return f"Value.string({self.value!r})"


def values(*args: Any) -> list[Value]:
    """Build configuration values from plain Python objects.

    None becomes NaN, bytes are decoded as text, real numbers become floats
    and anything else is converted to its string form.
    """
    result = []
    for arg in args:
        if arg is None:
            result.append(Value.float(math.nan))
        elif isinstance(arg, str):
            result.append(Value.string(arg))
        elif isinstance(arg, (bytes, bytearray)):
            result.append(Value.string(bytes(arg).decode("utf-8", errors="replace")))
        elif isinstance(arg, bool):
            result.append(Value.bool(arg))
        elif isinstance(arg, numbers.Real):
            result.append(Value.float(arg))
        else:
            result.append(Value.string(str(arg)))
    return result


@dataclass
class Block:
    """One configuration block, possibly holding nested blocks."""

    key: str = ""
    values: list[Value] = field(default_factory=list)
    children: list[Block] = field(default_factory=list)

    def is_zero(self) -> bool:
        return not self.key and not self.values and not self.children

    def merge(self, other: Block) -> None:
        """Append other's children; key and values must match unless self is empty."""
        if self.is_zero():
            self.key = other.key
            self.values = list(other.values)
            self.children = list(other.children)
            return
        if self.key != other.key or self.values != other.values:
            raise ConfigError(
                f"blocks differ: got {{key:{other.key} values:{other.values}}}, "
                f"want {{key:{self.key}, values:{self.values}}}"
            )
        self.children.extend(other.children)

    def unmarshal(self, target: Any) -> None:
        """Apply this block to a dataclass instance or an Unmarshaler."""
        if isinstance(target, Unmarshaler):
            target.unmarshal_config(self)
            return
        if not dataclasses.is_dataclass(target) or isinstance(target, type):
            raise ConfigError(
                "can only unmarshal into a dataclass instance or an Unmarshaler, "
                f"got {type(target).__name__}"
            )
        _unmarshal_struct(self, target)

    def marshal_text(self) -> str:
        """Return the block in collectd's configuration syntax."""
        return "".join(self._lines(""))

    def _lines(self, prefix: str) -> Iterator[str]:
        args = "".join(
            " " + (_quote(value.value) if value.is_string() else str(value))
            for value in self.values
        )
        if not self.children:
            yield f"{prefix}{self.key}{args}\n"
            return
        yield f"{prefix}<{self.key}{args}>\n"
        for child in self.children:
            yield from child._lines(prefix + "  ")
        yield f"{prefix}</{self.key}>\n"


class Unmarshaler(abc.ABC):
    """A type that reads its own configuration from a block."""

    @abc.abstractmethod
    def unmarshal_config(self, block: Block) -> None:
        """Fill self from block."""


@dataclass
class Port(Unmarshaler):
    """A TCP port number.

    A numeric option must lie in 1–65535; a string option is a service name
    or a decimal port number.
    """

    number: int = 0

    def __int__(self) -> int:
        return self.number

    def __index__(self) -> int:
        return self.number

    def unmarshal_config(self, block: Block) -> None:
        if len(block.values) != 1 or block.children:
            raise ConfigError(f'option "{block.key}" has to be a single scalar value')
        value = block.values[0]
        number = value.as_float()
        if number is not None:
            if math.isnan(number):
                raise ConfigError(
                    f'the value of the "{block.key}" option ({_format_number(number)}) is invalid'
                )
            if number < 1 or number > _PORT_MAX:
                raise ConfigError(
                    f'the value of the "{block.key}" option ({_format_number(number)}) '
                    "is out of range"
                )
            self.number = int(number)
            return
        if not value.is_string():
            raise ConfigError(
                f'the value of the "{block.key}" option must be a number or a string'
            )
        self.number = _lookup_port(block.key, value.value)


def _lookup_port(key: str, service: str) -> int:
    if service.isdecimal():
        number = int(service)
        if number > _PORT_MAX:
            raise ConfigError(f"{key}: invalid port {service!r}")
        return number
    try:
        return socket.getservbyname(service, "tcp")
    except OSError as err:
        known = _KNOWN_SERVICES.get(service.lower())
        if known is not None:
            return known
        raise ConfigError(f"{key}: unknown port tcp/{service}") from err


def _normalize(name: str) -> str:
    return name.replace("_", "").lower()


def _type_label(tp: Any) -> str:
    if get_origin(tp) is not None:
        return str(tp)
    return getattr(tp, "__name__", repr(tp))


def _is_scalar(tp: Any) -> bool:
    return any(tp is kind for kind in (str, bool, int, float))


def _resolve(annotation: Any, current: Any) -> Any:
    """Return the type behind a field annotation.

    Annotations written as text are understood for the scalar types and lists
    of them; otherwise the type of the field's current value is used.
    """
    if not isinstance(annotation, str):
        return annotation
    text = annotation.replace(" ", "")
    if text in _SCALAR_NAMES:
        return _SCALAR_NAMES[text]
    for prefix in ("list[", "List[", "typing.List["):
        if text.startswith(prefix) and text.endswith("]"):
            inner = text[len(prefix):-1]
            if inner in _SCALAR_NAMES:
                return list[_SCALAR_NAMES[inner]]
    if current is not None and _is_record(type(current)):
        return type(current)
    raise ConfigError(f"cannot resolve the field annotation {annotation!r}")


def _fields(obj: Any) -> dict[str, tuple[str, Any]]:
    return {
        _normalize(f.name): (f.name, f.type)
        for f in dataclasses.fields(obj)
        if not f.name.startswith("_")
    }


def _instantiate(tp: type) -> Any:
    try:
        return tp()
    except TypeError as err:
        raise ConfigError(f"cannot create a {tp.__name__} without arguments: {err}") from err


def _convert(value: Value, target: Any) -> Any:
    match value.kind:
        case ValueKind.STRING if target is str:
            return value.value
        case ValueKind.BOOLEAN if target is bool:
            return value.value
        case ValueKind.NUMBER if target is float:
            return value.value
        case ValueKind.NUMBER if target is int:
            try:
                return math.trunc(value.value)
            except (ValueError, OverflowError) as err:
                raise ConfigError(f"cannot convert {value} to an int") from err
    raise ConfigError(
        f"cannot unmarshal a {type(value.value).__name__} to a {_type_label(target)}"
    )


def _store_value(value: Value, target: Any, current: Any) -> Any:
    if _is_scalar(target):
        return _convert(value, target)
    if get_origin(target) is list:
        (element,) = get_args(target) or (Any,)
        return [*(current or []), _convert(value, element)]
    raise ConfigError(
        f"cannot unmarshal a {type(value.value).__name__} to a {_type_label(target)}"
    )


def _store_args(block: Block, obj: Any, fields: dict[str, tuple[str, Any]]) -> None:
    if not block.values:
        return
    entry = fields.get("args")
    if entry is None:
        raise ConfigError("cannot unmarshal values to a dataclass without an args field")
    name, annotation = entry
    hint = _resolve(annotation, getattr(obj, name))
    if len(block.values) > 1 and get_origin(hint) is not list:
        raise ConfigError(
            "cannot unmarshal config block with multiple values to a dataclass "
            "with a non-list args field"
        )
    for value in block.values:
        try:
            setattr(obj, name, _store_value(value, hint, getattr(obj, name)))
        except ConfigError as err:
            raise ConfigError(
                f'while attempting to unmarshal config value "{value}" in args: {err}'
            ) from err


def _unmarshal_struct(block: Block, obj: Any) -> None:
    fields = _fields(obj)
    try:
        _store_args(block, obj, fields)
    except ConfigError as err:
        raise ConfigError(
            f"while unmarshalling config block values into {type(obj).__name__}: {err}"
        ) from err
    for child in block.children:
        entry = fields.get(_normalize(child.key)) if child.key else None
        if entry is None:
            raise ConfigError(
                f"found child config block with no corresponding field: {child.key}"
            )
        name, annotation = entry
        current = getattr(obj, name)
        try:
            hint = _resolve(annotation, current)
            setattr(obj, name, _decode(child, hint, current))
        except (ValueError, TypeError) as err:
            raise ConfigError(f"in child config block {child.key}: {err}") from err


def _is_record(tp: Any) -> bool:
    return isinstance(tp, type) and (
        issubclass(tp, Unmarshaler) or dataclasses.is_dataclass(tp)
    )


def _decode(block: Block, tp: Any, current: Any) -> Any:
    """Return the new value of a field of type tp after applying block."""
    if isinstance(tp, type) and issubclass(tp, Unmarshaler):
        obj = current if isinstance(current, tp) else _instantiate(tp)
        obj.unmarshal_config(block)
        return obj
    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        obj = current if isinstance(current, tp) else _instantiate(tp)
        _unmarshal_struct(block, obj)
        return obj
    if get_origin(tp) is list:
        (element,) = get_args(tp) or (Any,)
        if _is_record(element):
            return [*(current or []), _decode(block, element, None)]
        if block.children:
            raise ConfigError(
                "cannot unmarshal a config with children except to a dataclass "
                "or a list of dataclasses"
            )
        return [*(current or []), *(_convert(value, element) for value in block.values)]
    if block.children:
        raise ConfigError(
            "cannot unmarshal a config with children except to a dataclass "
            "or a list of dataclasses"
        )
    if _is_scalar(tp):
        if len(block.values) != 1:
            raise ConfigError(
                f"cannot unmarshal config option with {len(block.values)} values "
                f"into scalar type {_type_label(tp)}"
            )
        return _convert(block.values[0], tp)
    raise ConfigError(f"cannot unmarshal into type {_type_label(tp)}")