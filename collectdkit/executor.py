"""Periodic callbacks for plugins started by collectd's exec plugin."""

from __future__ import annotations

import abc
import asyncio
import inspect
import logging
import math
import os
import socket
import sys
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from .api import Value, ValueList, Writer
from .putval import Putval

log = logging.getLogger(__name__)

_FALLBACK_INTERVAL = timedelta(seconds=10)


class _PutvalHolder:
    """Holds the writer that value callbacks print to."""

    def __init__(self) -> None:
        self.writer: Writer | None = None

    def get(self) -> Writer:
        if self.writer is None:
            self.writer = Putval(sys.stdout)
        return self.writer

    def set(self, writer: Writer) -> None:
        if not isinstance(writer, Writer) and not callable(getattr(writer, "write", None)):
            raise TypeError(f"not a writer: {writer!r}")
        self.writer = writer


_putval = _PutvalHolder()


def get_putval() -> Writer:
    """Return the writer used to print value lists; PUTVAL on stdout by default."""
    return _putval.get()


def set_putval(writer: Writer) -> None:
    """Replace the writer used to print value lists."""
    _putval.set(writer)


def default_interval() -> timedelta:
    """Interval from COLLECTD_INTERVAL, or 10 seconds if unset or invalid."""
    text = os.environ.get("COLLECTD_INTERVAL", "")
    try:
        if text != text.strip() or "_" in text:
            raise ValueError(f"invalid syntax: {text!r}")
        seconds = float(text)
        if not math.isfinite(seconds):
            raise ValueError(f"invalid interval: {text!r}")
        return timedelta(seconds=seconds)
    except (ValueError, OverflowError) as err:
        log.warning("unable to determine default interval: %s", err)
        return _FALLBACK_INTERVAL


def hostname() -> str:
    """Host name from COLLECTD_HOSTNAME, else the system's, else ""."""
    name = os.environ.get("COLLECTD_HOSTNAME", "")
    if name:
        return name
    try:
        return socket.gethostname()
    except OSError:
        return ""


def sanitize_interval(interval: timedelta) -> timedelta:
    """Return interval, or the default interval if it is zero."""
    if interval == timedelta(0):
        return default_interval()
    return interval


async def _call(func: Callable[..., Any], *args: Any) -> Any:
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class _Callback(abc.ABC):
    def __init__(self) -> None:
        self._stopped = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    def stop(self) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is not loop:
                loop.call_soon_threadsafe(self._stopped.set)
                return
        self._stopped.set()

    async def _every(self, interval: timedelta, action: Callable[[], Awaitable[Any]]) -> None:
        period = interval.total_seconds()
        if period <= 0:
            raise ValueError(f"non-positive interval: {interval}")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + period
        while not self._stopped.is_set():
            delay = deadline - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(self._stopped.wait(), delay)
                except TimeoutError:
                    pass
                else:
                    return
            else:
                await asyncio.sleep(0)
                if self._stopped.is_set():
                    return
            await action()
            deadline = max(deadline + period, loop.time())

    async def run(self) -> None:
        self._loop = asyncio.get_running_loop()
        await self._run()

    @abc.abstractmethod
    async def _run(self) -> None:
        """Call the callback periodically until stopped."""


class _ValueCallback(_Callback):
    def __init__(self, callback: Callable[[], Value], vl: ValueList) -> None:
        super().__init__()
        self._callback = callback
        self._vl = vl

    async def _run(self) -> None:
        vl = self._vl
        if not vl.identifier.host:
            vl.identifier = replace(vl.identifier, host=hostname())
        vl.interval = sanitize_interval(vl.interval)
        await self._every(vl.interval, self._tick)

    async def _tick(self) -> None:
        value = await _call(self._callback)
        self._vl.values = [value]
        self._vl.time = datetime.now(timezone.utc)
        try:
            await get_putval().write(self._vl.clone())
        except Exception:
            log.exception("writing value list %s failed", self._vl.identifier)


class _VoidCallback(_Callback):
    def __init__(self, callback: Callable[[timedelta], Any], interval: timedelta) -> None:
        super().__init__()
        self._callback = callback
        self._interval = interval

    async def _run(self) -> None:
        await self._every(
            sanitize_interval(self._interval),
            lambda: _call(self._callback, self._interval),
        )


class Executor:
    """Holds callbacks and calls each of them periodically."""

    def __init__(self) -> None:
        self._callbacks: list[_Callback] = []

    def value_callback(self, callback: Callable[[], Value], vl: ValueList) -> None:
        """Add a callback returning one value; the executor formats and prints it.

        An empty host is filled in from :func:`hostname`, a zero interval from
        :func:`default_interval`.
        """
        self._callbacks.append(_ValueCallback(callback, vl.clone()))

    def void_callback(self, callback: Callable[[timedelta], Any], interval: timedelta) -> None:
        """Add a callback that does its own formatting and printing.

        It is called with interval as its only argument.
        """
        self._callbacks.append(_VoidCallback(callback, interval))

    async def run(self) -> None:
        """Call all callbacks periodically until stopped or cancelled."""
        async with asyncio.TaskGroup() as group:
            for callback in self._callbacks:
                group.create_task(callback.run())

    def stop(self) -> None:
        """Signal all callbacks to exit; does not wait for them."""
        for callback in self._callbacks:
            callback.stop()