import math
from dataclasses import dataclass, field

import pytest

from collectdkit.config import (
    Block,
    ConfigError,
    Port,
    Unmarshaler,
    Value,
    ValueKind,
    values,
)


@dataclass
class HostConf:
    args: str = ""
    keep_alive: bool = False
    expect: list[str] = field(default_factory=list)
    hats: int = 0


@dataclass
class PluginConf:
    args: str = ""
    host: HostConf = field(default_factory=HostConf)


@dataclass
class PluginListConf:
    args: str = ""
    host: list[HostConf] = field(default_factory=list)


@dataclass
class ArgsList:
    args: list[str] = field(default_factory=list)


@dataclass
class NoArgs:
    pass


@dataclass
class IntArgs:
    args: list[int] = field(default_factory=list)


@dataclass
class IntArg:
    args: int = 0


@dataclass
class WithNested:
    block_with_errors: IntArg = field(default_factory=IntArg)


@dataclass
class ArgsOnly:
    args: str = ""


@dataclass
class WithListValue:
    args: str = ""
    list_value: float = 0.0


@dataclass
class WithMapping:
    args: str = ""
    number_value: dict[str, int] = field(default_factory=dict)


@dataclass
class DoubleInt(Unmarshaler):
    value: int = 0

    def unmarshal_config(self, block):
        if len(block.values) != 1 or block.children:
            raise ConfigError(
                f"got {len(block.values)} values and {len(block.children)} children"
            )
        number = block.values[0].as_float()
        if number is None:
            raise ConfigError("want a number")
        self.value = int(2 * number)


@dataclass
class WithDouble:
    args: str = ""
    double: DoubleInt = field(default_factory=DoubleInt)


@dataclass
class WithPort:
    args: str = ""
    port: Port = field(default_factory=Port)


def _host_block():
    return Block(
        key="myPlugin",
        children=[
            Block(
                key="Host",
                children=[
                    Block(key="KeepAlive", values=values(True)),
                    Block(key="Expect", values=values("foo")),
                    Block(key="Expect", values=values("bar")),
                    Block(key="Hats", values=values(424242.42)),
                ],
            )
        ],
    )


def _port_block(value):
    return Block(
        key="Plugin",
        values=[Value.string("test")],
        children=[Block(key="Port", values=[value])],
    )


SUCCESS_CASES = [
    pytest.param(
        _host_block(),
        PluginConf,
        PluginConf(host=HostConf(keep_alive=True, expect=["foo", "bar"], hats=424242)),
        id="base",
    ),
    pytest.param(
        _host_block(),
        PluginListConf,
        PluginListConf(
            host=[HostConf(keep_alive=True, expect=["foo", "bar"], hats=424242)]
        ),
        id="list of dataclasses",
    ),
    pytest.param(
        Block(key="Plugin", values=values("test")),
        PluginConf,
        PluginConf(args="test"),
        id="block values",
    ),
    pytest.param(
        Block(key="Plugin", values=values("one", "two")),
        ArgsList,
        ArgsList(args=["one", "two"]),
        id="multiple block values",
    ),
    pytest.param(
        Block(
            key="Plugin",
            values=values("test"),
            children=[Block(key="Double", values=values(64))],
        ),
        WithDouble,
        WithDouble(args="test", double=DoubleInt(128)),
        id="unmarshaler success",
    ),
    pytest.param(
        _port_block(Value.float(80)),
        WithPort,
        WithPort(args="test", port=Port(80)),
        id="port numeric",
    ),
    pytest.param(
        _port_block(Value.string("http")),
        WithPort,
        WithPort(args="test", port=Port(80)),
        id="port service name",
    ),
    pytest.param(
        _port_block(Value.string("8080")),
        WithPort,
        WithPort(args="test", port=Port(8080)),
        id="port numeric string",
    ),
]


@pytest.mark.parametrize("block, factory, want", SUCCESS_CASES)
def test_unmarshal_success(block, factory, want):
    target = factory()
    Block.unmarshal(block, target)
    assert target == want


ERROR_CASES = [
    pytest.param(Block(), None, id="none argument"),
    pytest.param(Block(), 23, id="non-dataclass argument"),
    pytest.param(Block(key="Plugin", values=values("test")), NoArgs(), id="no args field"),
    pytest.param(
        Block(key="Plugin", values=values("not an int")), IntArgs(), id="type mismatch"
    ),
    pytest.param(
        Block(key="Plugin", values=values("one", "two")),
        PluginConf(),
        id="multiple values into scalar args",
    ),
    pytest.param(
        Block(key="Plugin", children=[Block()]),
        "not a dataclass",
        id="children require dataclass",
    ),
    pytest.param(
        Block(
            key="Plugin",
            children=[
                Block(
                    key="BlockWithErrors",
                    values=values("have string, expect int"),
                    children=[Block()],
                )
            ],
        ),
        WithNested(),
        id="error in nested block",
    ),
    pytest.param(
        Block(
            key="Plugin",
            values=values("test"),
            children=[Block(key="UnexpectedBlock", children=[Block()])],
        ),
        ArgsOnly(),
        id="unexpected nested block",
    ),
    pytest.param(
        Block(
            key="Plugin",
            values=values("test"),
            children=[Block(key="ListValue", values=values(23, 64))],
        ),
        WithListValue(),
        id="list into scalar",
    ),
    pytest.param(
        Block(
            key="Plugin",
            values=values("test"),
            children=[Block(key="NumberValue", values=values(64))],
        ),
        WithMapping(),
        id="unsupported field type",
    ),
    pytest.param(
        Block(
            key="Plugin",
            values=values("test"),
            children=[Block(key="Double", values=values("not a number", 64))],
        ),
        WithDouble(),
        id="unmarshaler failure",
    ),
    pytest.param(_port_block(Value.float(1 << 48)), WithPort(), id="port out of range"),
    pytest.param(_port_block(Value.float(math.nan)), WithPort(), id="port not a number"),
    pytest.param(_port_block(Value.bool(True)), WithPort(), id="port invalid type"),
    pytest.param(
        _port_block(Value.string("--- invalid ---")), WithPort(), id="port unknown service"
    ),
]


@pytest.mark.parametrize("block, target", ERROR_CASES)
def test_unmarshal_errors(block, target):
    with pytest.raises(ConfigError):
        Block.unmarshal(block, target)


def test_unmarshal_into_port_directly():
    port = Port()
    Block(key="Port", values=[Value.float(443.9)]).unmarshal(port)
    assert int(port) == 443


def test_port_rejects_children():
    block = Block(key="Port", values=[Value.float(80)], children=[Block(key="x")])
    with pytest.raises(ConfigError, match="single scalar value"):
        Port().unmarshal_config(block)


@pytest.mark.parametrize(
    "arg, want",
    [
        ("foo", Value.string("foo")),
        (b"byte array", Value.string("byte array")),
        (True, Value.bool(True)),
        (42.11, Value.float(42.11)),
        (12.25, Value.float(12.25)),
        (0x1F622, Value.float(128546)),
        (0x1F61F, Value.float(128543)),
        (complex(4, 1), Value.string("(4+1j)")),
        ({"answer": 42}, Value.string("{'answer': 42}")),
        ([1, 2, 3], Value.string("[1, 2, 3]")),
    ],
)
def test_values(arg, want):
    assert values(arg) == [want]


def test_values_none_is_nan():
    (got,) = values(None)
    assert got.kind is ValueKind.NUMBER
    assert math.isnan(got.as_float())


@pytest.mark.parametrize(
    "value, want",
    [
        (Value.string("foo"), "foo"),
        (Value.float(42.0), 42.0),
        (Value.bool(True), True),
        (Value(), ""),
    ],
)
def test_value_interface(value, want):
    assert value.interface() == want


def test_value_accessors():
    assert Value.float(1.5).as_float() == 1.5
    assert Value.string("x").as_float() is None
    assert Value.bool(False).as_bool() is False
    assert Value.float(1).as_bool() is None
    assert Value.string("x").is_string()
    assert not Value.bool(True).is_string()


@pytest.mark.parametrize(
    "value, want",
    [
        (Value.float(8080), "8080"),
        (Value.float(42.11), "42.11"),
        (Value.float(1e20), "100000000000000000000"),
        (Value.float(1e21), "1e+21"),
        (Value.float(0.0001), "0.0001"),
        (Value.float(0.00001), "1e-05"),
        (Value.float(math.nan), "NaN"),
        (Value.bool(True), "true"),
        (Value.string("plain"), "plain"),
    ],
)
def test_value_str(value, want):
    assert str(value) == want


def test_value_repr():
    assert repr(Value.string("foo")) == "Value.string('foo')"
    assert repr(Value.bool(True)) == "Value.bool(True)"
    assert repr(Value.float(2)) == "Value.float(2.0)"


def test_value_rejects_mismatched_kind():
    with pytest.raises(TypeError):
        Value(ValueKind.BOOLEAN, "yes")


def _make_block(key, value, children=None):
    return Block(key=key, values=values(value), children=list(children or []))


def _make_children(*names):
    return [_make_block(name, "value") for name in names]


@pytest.mark.parametrize(
    "in0, in1, want",
    [
        (
            _make_block("Plugin", "test", _make_children("foo")),
            _make_block("Plugin", "test", _make_children("bar")),
            _make_block("Plugin", "test", _make_children("foo", "bar")),
        ),
        (
            _make_block("Plugin", "test"),
            _make_block("Plugin", "test", _make_children("bar")),
            _make_block("Plugin", "test", _make_children("bar")),
        ),
        (
            _make_block("Plugin", "test", _make_children("foo")),
            _make_block("Plugin", "test"),
            _make_block("Plugin", "test", _make_children("foo")),
        ),
        (
            _make_block("Plugin", "test"),
            _make_block("Plugin", "test"),
            _make_block("Plugin", "test"),
        ),
        (
            Block(),
            _make_block("Plugin", "test", _make_children("foo")),
            _make_block("Plugin", "test", _make_children("foo")),
        ),
    ],
)
def test_block_merge(in0, in1, want):
    in0.merge(in1)
    assert in0 == want


@pytest.mark.parametrize(
    "in0, in1",
    [
        (_make_block("Plugin", "test"), _make_block("SomethingElse", "test")),
        (_make_block("Plugin", "test"), _make_block("Plugin", "prod")),
    ],
)
def test_block_merge_mismatch(in0, in1):
    with pytest.raises(ConfigError, match="blocks differ"):
        in0.merge(in1)


def test_block_is_zero():
    assert Block().is_zero()
    assert not Block(key="x").is_zero()


def test_block_marshal_text():
    block = Block(
        key="myPlugin",
        children=[
            Block(
                key="Listen",
                values=values("localhost", 8080),
                children=[Block(key="KeepAlive", values=values(True))],
            )
        ],
    )
    want = (
        "<myPlugin>\n"
        '  <Listen "localhost" 8080>\n'
        "    KeepAlive true\n"
        "  </Listen>\n"
        "</myPlugin>\n"
    )
    assert block.marshal_text() == want


def test_block_marshal_text_quotes_strings():
    block = Block(key="Name", values=values('say "hi"\n'))
    assert block.marshal_text() == 'Name "say \\"hi\\"\\n"\n'