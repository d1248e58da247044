"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from autodeploy.common.time import ManualClock
from autodeploy.runners import init_runner_storage
from tests.helpers import EPOCH

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> typ.AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a fresh async session factory backed by sqlite."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'autodeploy_test.db'}"
    )
    try:
        await init_runner_storage(engine)
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def clock() -> ManualClock:
    """Return a manual clock starting at a fixed instant."""
    return ManualClock(EPOCH)
