import asyncio
import io
from datetime import timedelta

import pytest

from collectdkit.api import Derive, Gauge, Identifier, ValueList, Writer
from collectdkit.executor import (
    Executor,
    default_interval,
    get_putval,
    hostname,
    sanitize_interval,
    set_putval,
)
from collectdkit.putval import Putval


class _RecordingWriter(Writer):
    def __init__(self):
        self.got = []

    async def write(self, vl):
        self.got.append(vl)


@pytest.fixture
def recorder():
    saved = get_putval()
    writer = _RecordingWriter()
    set_putval(writer)
    yield writer
    set_putval(saved)


@pytest.mark.parametrize(
    "arg, env, want",
    [
        (timedelta(seconds=42), "", timedelta(seconds=42)),
        (timedelta(seconds=42), "23", timedelta(seconds=42)),
        (timedelta(0), "23", timedelta(seconds=23)),
        (timedelta(0), "8.15", timedelta(milliseconds=8150)),
        (timedelta(0), "", timedelta(seconds=10)),
        (timedelta(0), "--- INVALID ---", timedelta(seconds=10)),
    ],
)
def test_sanitize_interval(monkeypatch, arg, env, want):
    if env:
        monkeypatch.setenv("COLLECTD_INTERVAL", env)
    else:
        monkeypatch.delenv("COLLECTD_INTERVAL", raising=False)
    assert sanitize_interval(arg) == want


def test_default_interval_rejects_non_finite(monkeypatch):
    monkeypatch.setenv("COLLECTD_INTERVAL", "inf")
    assert default_interval() == timedelta(seconds=10)


def test_hostname_from_environment(monkeypatch):
    monkeypatch.setenv("COLLECTD_HOSTNAME", "example.com")
    assert hostname() == "example.com"


def test_set_putval_replaces_writer(recorder):
    assert get_putval() is recorder


@pytest.mark.asyncio
@pytest.mark.parametrize("how", ["stop", "cancel"])
async def test_value_callback(how, monkeypatch, recorder):
    monkeypatch.setenv("COLLECTD_HOSTNAME", "example.com")
    executor = Executor()
    task = None

    def callback():
        if how == "stop":
            executor.stop()
        else:
            task.cancel()
        return Derive(42)

    executor.value_callback(
        callback,
        ValueList(
            identifier=Identifier(plugin="sample-exec", type="derive"),
            interval=timedelta(milliseconds=1),
            ds_names=["value"],
        ),
    )

    task = asyncio.create_task(executor.run())
    if how == "stop":
        await asyncio.wait_for(task, 5)
    else:
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, 5)

    assert len(recorder.got) == 1
    vl = recorder.got[0]
    assert vl.identifier == Identifier(host="example.com", plugin="sample-exec", type="derive")
    assert vl.interval == timedelta(milliseconds=1)
    assert vl.values == [Derive(42)]
    assert vl.ds_names == ["value"]
    assert vl.time is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("how", ["stop", "cancel"])
async def test_void_callback(how):
    executor = Executor()
    task = None
    intervals = []

    def callback(interval):
        intervals.append(interval)
        if how == "stop":
            executor.stop()
        else:
            task.cancel()

    executor.void_callback(callback, timedelta(milliseconds=1))

    task = asyncio.create_task(executor.run())
    if how == "stop":
        await asyncio.wait_for(task, 5)
    else:
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, 5)

    assert intervals == [timedelta(milliseconds=1)]


@pytest.mark.asyncio
async def test_async_void_callback():
    executor = Executor()
    calls = []

    async def callback(interval):
        await asyncio.sleep(0)
        calls.append(interval)
        executor.stop()

    executor.void_callback(callback, timedelta(milliseconds=2))
    await asyncio.wait_for(executor.run(), 5)
    assert calls == [timedelta(milliseconds=2)]


@pytest.mark.asyncio
async def test_stop_before_run_returns_without_calls():
    executor = Executor()
    calls = []
    executor.void_callback(calls.append, timedelta(milliseconds=1))
    executor.stop()
    await asyncio.wait_for(executor.run(), 5)
    assert calls == []


@pytest.mark.asyncio
async def test_value_callback_prints_putval():
    saved = get_putval()
    buf = io.StringIO()
    set_putval(Putval(buf))
    try:
        executor = Executor()

        def answer():
            executor.stop()
            return Gauge(42)

        executor.value_callback(
            answer,
            ValueList(
                identifier=Identifier(
                    host="example.com", plugin="demo", type="answer", type_instance="life"
                ),
                interval=timedelta(milliseconds=1),
            ),
        )
        await asyncio.wait_for(executor.run(), 5)
    finally:
        set_putval(saved)

    lines = buf.getvalue().splitlines(keepends=True)
    assert len(lines) == 1
    assert lines[0].startswith('PUTVAL "example.com/demo/answer-life" interval=0.001 ')
    assert lines[0].endswith(":42\n")


@pytest.mark.asyncio
async def test_negative_interval_raises():
    executor = Executor()
    executor.void_callback(lambda interval: None, timedelta(seconds=-1))
    with pytest.raises(ExceptionGroup) as info:
        await executor.run()
    assert info.group_contains(ValueError)