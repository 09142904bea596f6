# collectdkit

Building blocks for programs that produce or consume collectd metrics.

## Modules

- `collectdkit.api`: the core metric types. `Gauge`, `Derive` and `Counter`
  are value types, and `type_name()` returns `"gauge"`, `"derive"` or
  `"counter"` for a value. `Identifier` is a
  `host/plugin-instance/type-instance` name, read with `Identifier.parse()`.
  `ValueList` holds one set of data points. `ValueList.check()` raises
  `ValueListError` that lists every problem it finds, and `ValueList.clone()`
  makes an independent copy. `Writer` is the async writer interface.
  `WriterFunc` wraps a plain or async function as a writer. `Fanout` writes
  to several writers at once and gives each one its own copy.
- `collectdkit.meta`: typed meta data entries (`Entry`) and the helpers
  `clone()`, `dumps()` and `loads()` for meta data mappings.
- `collectdkit.cdtime`: `CdTime`, collectd's fixed-point time format, whose
  unit is 2^-30 of a second. It converts from and to `datetime`, `timedelta`,
  nanoseconds and JSON numbers.
- `collectdkit.jsoncodec`: value lists in collectd's JSON export format:
  `to_json()`, `to_dict()`, `from_json()`, `from_dict()`.
- `collectdkit.typesdb`: `TypesDB.load()` reads `types.db` definitions into
  `DataSet` and `DataSource` objects. `TypesDB.value_list()` builds value
  lists whose values are typed by their data set. Looking up an unknown type
  raises `NoDatasetError`.
- `collectdkit.putval`: `format_line()` and the `Putval` writer produce the
  `PUTVAL` text protocol.
- `collectdkit.graphite`: the `Graphite` writer produces the Graphite
  plaintext protocol.
- `collectdkit.config`: configuration `Block` and `Value` objects. A block can
  be merged with another one with `Block.merge()`. It can be rendered in
  collectd's configuration syntax with `Block.marshal_text()`. It can be
  mapped onto a dataclass instance or an `Unmarshaler` with
  `Block.unmarshal()`. `Port` reads a port number or a service name.
- `collectdkit.executor`: an `Executor` for programs started by collectd's
  exec plugin. It calls callbacks periodically and prints `PUTVAL` lines
  through the writer returned by `get_putval()`.
- `collectdkit.export`: instrument your own code with `Derive` and `Gauge`
  variables. `run()` reports them periodically to any writer.

All writers are asynchronous: `await writer.write(vl)`.

## Installation

```
pip install collectdkit
```

## Examples

Parse an identifier and format a value list as a PUTVAL line:

```python
from datetime import timedelta

from collectdkit.api import Gauge, Identifier, ValueList
from collectdkit.putval import format_line

vl = ValueList(
    identifier=Identifier.parse("example.com/myapp/gauge"),
    interval=timedelta(seconds=10),
    values=[Gauge(42)],
)
print(format_line(vl), end="")
# PUTVAL "example.com/myapp/gauge" interval=10.000 N:42
```

Write the same value list through a writer:

```python
import asyncio
import sys

from collectdkit.putval import Putval

asyncio.run(Putval(sys.stdout).write(vl))
```

Look up a type in a `types.db` file:

```python
from collectdkit.typesdb import TypesDB

with open("/usr/share/collectd/types.db") as fh:
    db = TypesDB.load(fh)

dataset = db.dataset("if_octets")
print(dataset.names())  # ['rx', 'tx']
```

Render a configuration block:

```python
from collectdkit.config import Block, values

block = Block("myPlugin", children=[Block("Listen", values("localhost", 8080))])
print(block.marshal_text(), end="")
# <myPlugin>
#   Listen "localhost" 8080
# </myPlugin>
```

Map a configuration block onto a dataclass. Child keys match field names
regardless of case and underscores, and the block's own values go into
`args`:

```python
from dataclasses import dataclass

from collectdkit.config import Block, values


@dataclass
class PluginConfig:
    args: str = ""
    keep_alive: bool = False


conf = PluginConfig()
Block("Plugin", values("test"), [Block("KeepAlive", values(True))]).unmarshal(conf)
print(conf)  # PluginConfig(args='test', keep_alive=True)
```

Export a counter and report it every ten seconds:

```python
import asyncio
import sys
from datetime import timedelta

from collectdkit import export
from collectdkit.putval import Putval

requests = export.Derive.from_string("example.com/myapp/total_requests")
requests.add(1)

asyncio.run(export.run(Putval(sys.stdout), timedelta(seconds=10)))
```

## What it does not do

The package formats and parses metrics, but it has no network transport. It
has no client or server for collectd's binary network protocol. Its writers
only emit text to streams that you supply. It has no command-line program of
its own.

## Running the tests

```
pip install -e ".[test]"
pytest
```