"""Persistence for the runner record table.

The in-memory table inside ``RunnerPool`` is authoritative while the process
runs; a ``RunnerRecordStore`` mirrors it so machines can be reused (and later
reaped) across restarts.
"""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import DateTime, Integer, String, delete, select
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from autodeploy.common.time import utcnow

from .models import Architecture, Compute, Engine, RunnerRecord, RunnerSpec, RunnerState

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


@typ.runtime_checkable
class RunnerRecordStore(typ.Protocol):
    """Durable mirror of the runner record table."""

    async def load(self) -> list[RunnerRecord]:
        """Return every persisted record."""
        ...

    async def save(self, record: RunnerRecord) -> None:
        """Insert or update ``record``."""
        ...

    async def delete(self, key: str) -> None:
        """Remove the record stored under ``key`` if present."""
        ...


class Base(DeclarativeBase):
    """Declarative base for runner persistence."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime that keeps UTC tzinfo on every backend, SQLite included."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Store aware values as UTC; reject naive ones."""
        if value is None:
            return None
        if value.tzinfo is None:
            msg = "runner timestamps must be timezone-aware"
            raise ValueError(msg)
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Return UTC-aware datetimes."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class RunnerRecordRow(Base):
    """One pooled runner machine."""

    __tablename__ = "runner_records"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    machine_id: Mapped[str | None] = mapped_column(String(255), default=None)
    engine: Mapped[str] = mapped_column(String(32))
    architecture: Mapped[str] = mapped_column(String(16))
    compute: Mapped[str] = mapped_column(String(16))
    timeout_seconds: Mapped[int] = mapped_column(Integer)
    state: Mapped[str] = mapped_column(String(16))
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    last_used_at: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


def _row_to_record(row: RunnerRecordRow) -> RunnerRecord:
    spec = RunnerSpec(
        engine=Engine(row.engine),
        architecture=Architecture(row.architecture),
        compute=Compute(row.compute),
        timeout=dt.timedelta(seconds=row.timeout_seconds),
    )
    return RunnerRecord(
        key=row.key,
        spec=spec,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
        state=RunnerState(row.state),
        machine_id=row.machine_id,
    )


def _apply_record(row: RunnerRecordRow, record: RunnerRecord) -> None:
    row.machine_id = record.machine_id
    row.engine = record.spec.engine.value
    row.architecture = record.spec.architecture.value
    row.compute = record.spec.compute.value
    row.timeout_seconds = int(record.spec.timeout.total_seconds())
    row.state = record.state.value
    row.created_at = record.created_at
    row.last_used_at = record.last_used_at


class SqlRunnerRecordStore:
    """SQLAlchemy-backed ``RunnerRecordStore``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Bind the store to an async session factory."""
        self._session_factory = session_factory

    async def load(self) -> list[RunnerRecord]:
        """Return every persisted record ordered by creation time."""
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(RunnerRecordRow).order_by(RunnerRecordRow.created_at)
            )
            return [_row_to_record(row) for row in rows.all()]

    async def save(self, record: RunnerRecord) -> None:
        """Upsert ``record`` by key."""
        async with self._session_factory() as session, session.begin():
            row = await session.get(RunnerRecordRow, record.key)
            if row is None:
                row = RunnerRecordRow(key=record.key)
                session.add(row)
            _apply_record(row, record)

    async def delete(self, key: str) -> None:
        """Delete the row for ``key``."""
        async with self._session_factory() as session, session.begin():
            await session.execute(
                delete(RunnerRecordRow).where(RunnerRecordRow.key == key)
            )


async def init_runner_storage(engine: AsyncEngine) -> None:
    """Create the runner tables if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
