"""Keyed pool of reusable build runners.

Runners are cached by the canonical key of their ``RunnerSpec``. Each key has
its own lock, so work on one key never waits for another:

- ``acquire`` reuses a ``ready`` runner, waits for a ``busy`` one, or
  provisions a new one while holding the key lock. Concurrent acquires for
  the same key therefore trigger at most one provisioning call and end up on
  the same machine.
- ``release`` hands a runner back and wakes the next waiter.
- ``reap`` retires ``ready`` runners idle for longer than the threshold,
  taking the same key lock so it can never race an acquire.

Runners are never shared between concurrent builds.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import datetime as dt
import typing as typ

from autodeploy.common.time import utcnow
from autodeploy.errors import ProvisioningError, RunnerStateError
from autodeploy.observability import AutodeployEventLogger

from .models import RunnerHandle, RunnerRecord, RunnerState

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from autodeploy.common.time import Clock

    from .models import RunnerSpec
    from .provisioner import Provisioner
    from .storage import RunnerRecordStore

DEFAULT_IDLE_THRESHOLD = dt.timedelta(days=7)


@dataclasses.dataclass(slots=True)
class _KeySlot:
    """Lock, condition, and waiter count for one pool key."""

    lock: asyncio.Lock = dataclasses.field(default_factory=asyncio.Lock)
    condition: asyncio.Condition = dataclasses.field(init=False)
    users: int = 0

    def __post_init__(self) -> None:
        self.condition = asyncio.Condition(self.lock)


class RunnerPool:
    """Create-if-absent cache of runner machines with idle expiry.

    Parameters
    ----------
    provisioner
        Creates and destroys machines.
    clock
        Source of ``created_at``/``last_used_at`` timestamps.
    store
        Optional durable mirror of the record table. Store failures are
        logged; the in-memory table stays authoritative.
    event_logger
        Structured lifecycle logger.

    """

    def __init__(
        self,
        provisioner: Provisioner,
        *,
        clock: Clock = utcnow,
        store: RunnerRecordStore | None = None,
        event_logger: AutodeployEventLogger | None = None,
    ) -> None:
        """Create an empty pool."""
        self._provisioner = provisioner
        self._clock = clock
        self._store = store
        self._events = event_logger or AutodeployEventLogger()
        self._records: dict[str, RunnerRecord] = {}
        self._slots: dict[str, _KeySlot] = {}

    def records(self) -> list[RunnerRecord]:
        """Return copies of every record."""
        return [dataclasses.replace(record) for record in self._records.values()]

    def get(self, key: str) -> RunnerRecord | None:
        """Return a copy of the record for ``key`` if one exists."""
        record = self._records.get(key)
        return None if record is None else dataclasses.replace(record)

    @property
    def active_keys(self) -> int:
        """Return how many keys currently hold a lock slot."""
        return len(self._slots)

    @contextlib.asynccontextmanager
    async def _locked(self, key: str) -> cabc.AsyncIterator[_KeySlot]:
        """Hold the lock for ``key``, dropping the slot once nobody needs it."""
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _KeySlot()
        slot.users += 1
        try:
            async with slot.condition:
                yield slot
        finally:
            slot.users -= 1
            if (
                slot.users == 0
                and key not in self._records
                and self._slots.get(key) is slot
            ):
                del self._slots[key]

    async def acquire(self, spec: RunnerSpec) -> RunnerHandle:
        """Check out a runner for ``spec``, provisioning one if needed.

        Raises
        ------
        ProvisioningError
            When the provider fails to create the machine. No record is left
            behind and the pool does not retry.

        """
        key = spec.key
        async with self._locked(key) as slot:
            while True:
                record = self._records.get(key)
                if record is None:
                    return await self._provision_locked(slot, key, spec)
                if record.state is RunnerState.READY:
                    record.state = RunnerState.BUSY
                    record.last_used_at = self._clock()
                    await self._persist(record)
                    handle = record.handle()
                    self._events.log_runner_checked_out(handle)
                    return handle
                await slot.condition.wait()

    async def _provision_locked(
        self, slot: _KeySlot, key: str, spec: RunnerSpec
    ) -> RunnerHandle:
        started = self._clock()
        record = RunnerRecord(
            key=key,
            spec=spec,
            created_at=started,
            last_used_at=started,
            state=RunnerState.PROVISIONING,
        )
        self._records[key] = record
        provisioned = False
        try:
            machine_id = await self._provisioner.provision(spec)
            provisioned = True
        except Exception as exc:
            self._events.log_runner_provision_failed(key, exc)
            raise ProvisioningError.provider_failure(key, exc) from exc
        finally:
            if not provisioned:
                del self._records[key]
                slot.condition.notify_all()

        now = self._clock()
        record.machine_id = machine_id
        record.state = RunnerState.BUSY
        record.last_used_at = now
        await self._persist(record)
        handle = record.handle()
        self._events.log_runner_provisioned(handle, now - started)
        return handle

    async def release(self, handle: RunnerHandle) -> None:
        """Return a busy runner to the pool.

        Raises
        ------
        RunnerStateError
            If the runner is unknown or not currently checked out.

        """
        async with self._locked(handle.key) as slot:
            record = self._records.get(handle.key)
            if record is None or record.machine_id != handle.machine_id:
                raise RunnerStateError(handle.key, "unknown runner")
            if record.state is not RunnerState.BUSY:
                raise RunnerStateError(
                    handle.key, f"cannot release a {record.state} runner"
                )
            record.state = RunnerState.READY
            record.last_used_at = self._clock()
            await self._persist(record)
            slot.condition.notify_all()

    async def reap(
        self,
        now: dt.datetime | None = None,
        idle_threshold: dt.timedelta = DEFAULT_IDLE_THRESHOLD,
    ) -> list[RunnerHandle]:
        """Tear down ready runners idle for strictly longer than the threshold.

        Busy and provisioning runners are never touched. A failed teardown
        leaves the runner ``ready`` for the next sweep.

        Returns
        -------
        list[RunnerHandle]
            Handles of the runners that were removed.

        """
        return await self._retire(now or self._clock(), idle_threshold)

    async def teardown_all(self) -> list[RunnerHandle]:
        """Tear down every ready runner regardless of idle time."""
        return await self._retire(self._clock(), None)

    async def _retire(
        self, now: dt.datetime, idle_threshold: dt.timedelta | None
    ) -> list[RunnerHandle]:
        results = await asyncio.gather(
            *(
                self._retire_key(key, now, idle_threshold)
                for key in list(self._records)
            )
        )
        return [handle for handle in results if handle is not None]

    async def _retire_key(
        self,
        key: str,
        now: dt.datetime,
        idle_threshold: dt.timedelta | None,
    ) -> RunnerHandle | None:
        async with self._locked(key) as slot:
            record = self._records.get(key)
            if record is None or record.state is not RunnerState.READY:
                return None
            idle = record.idle_for(now)
            if idle_threshold is not None and idle <= idle_threshold:
                return None

            handle = record.handle()
            record.state = RunnerState.RETIRING
            torn_down = False
            try:
                await self._provisioner.teardown(handle.machine_id)
                torn_down = True
            except Exception as exc:  # noqa: BLE001 - retried on the next sweep
                self._events.log_runner_teardown_failed(key, exc)
                return None
            finally:
                if not torn_down:
                    record.state = RunnerState.READY
                    slot.condition.notify_all()

            del self._records[key]
            await self._forget(key)
            slot.condition.notify_all()
            self._events.log_runner_reaped(handle, idle)
            return handle

    async def restore(self) -> int:
        """Load persisted records into an empty pool.

        Records caught mid-provisioning are dropped because their machine may
        never have existed. Busy or retiring records come back ``ready`` so
        the reaper can age them out.

        Returns
        -------
        int
            Number of records restored.

        """
        if self._store is None:
            return 0
        if self._records:
            msg = "restore() requires an empty pool"
            raise RuntimeError(msg)

        restored = 0
        for record in await self._store.load():
            if record.state is RunnerState.PROVISIONING or record.machine_id is None:
                await self._forget(record.key)
                continue
            if record.state is not RunnerState.READY:
                record.state = RunnerState.READY
                await self._persist(record)
            self._records[record.key] = record
            restored += 1
        return restored

    async def _persist(self, record: RunnerRecord) -> None:
        if self._store is None:
            return
        try:
            await self._store.save(dataclasses.replace(record))
        except Exception as exc:  # noqa: BLE001 - store mirrors the in-memory table
            self._events.log_runner_store_failed(record.key, "save", exc)

    async def _forget(self, key: str) -> None:
        if self._store is None:
            return
        try:
            await self._store.delete(key)
        except Exception as exc:  # noqa: BLE001 - store mirrors the in-memory table
            self._events.log_runner_store_failed(key, "delete", exc)
