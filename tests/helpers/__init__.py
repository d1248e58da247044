"""Shared test utilities."""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

EPOCH = dt.datetime(2025, 1, 1, 9, 0, tzinfo=dt.UTC)


def run_async[T](coro_func: typ.Callable[[], typ.Coroutine[typ.Any, typ.Any, T]]) -> T:
    """Execute an async callable within the test context."""
    return asyncio.run(coro_func())
