"""Unit tests for build dispatch and runner release."""

from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from autodeploy.builds import (
    BuildDispatcher,
    BuildOutcome,
    BuildStatus,
    LocalBuildEngine,
)
from autodeploy.errors import DispatchError, DispatchErrorKind
from autodeploy.runners import (
    LocalProvisioner,
    RunnerHandle,
    RunnerPool,
    RunnerSpec,
    RunnerState,
)
from autodeploy.targets import Target

TARGET = Target(stage="production")


class _CountingPool(RunnerPool):
    """Pool that records every release."""

    def __init__(self) -> None:
        super().__init__(LocalProvisioner())
        self.released: list[RunnerHandle] = []

    async def release(self, handle: RunnerHandle) -> None:
        self.released.append(handle)
        await super().release(handle)


class _DroppingEngine(LocalBuildEngine):
    """Engine whose status polling loses its connection."""

    async def wait(self, build_id: str) -> BuildOutcome:
        msg = "status endpoint unreachable"
        raise ConnectionError(msg)


class _HangingStartEngine(LocalBuildEngine):
    """Engine whose start request never returns."""

    async def start(self, job_id: str, target: Target, runner: RunnerHandle) -> str:
        await asyncio.Event().wait()
        return job_id


class _SlowCancelEngine(LocalBuildEngine):
    """Engine whose cancel call blocks until ``cancel_gate`` is set."""

    def __init__(self) -> None:
        super().__init__(duration=None)
        self.cancel_gate = asyncio.Event()

    async def cancel(self, build_id: str) -> None:
        self.cancel_calls.append(build_id)
        await self.cancel_gate.wait()
        self.builds[build_id].cancelled = True


async def _checkout(
    pool: RunnerPool, timeout: dt.timedelta = dt.timedelta(hours=1)
) -> RunnerHandle:
    return await pool.acquire(RunnerSpec(timeout=timeout))


def _assert_released_once(pool: _CountingPool, handle: RunnerHandle) -> None:
    assert pool.released == [handle], f"expected one release, got {pool.released}"
    record = pool.get(handle.key)
    assert record is not None
    assert record.state is RunnerState.READY


@pytest.mark.asyncio
async def test_successful_build() -> None:
    """A build that succeeds yields a SUCCEEDED job and frees the runner."""
    pool = _CountingPool()
    engine = LocalBuildEngine()
    handle = await _checkout(pool)

    job = await BuildDispatcher(pool, engine).run(TARGET, handle)

    assert job.status is BuildStatus.SUCCEEDED
    assert job.succeeded
    assert job.error is None
    assert job.build_id is not None
    assert job.build_id.startswith(handle.machine_id)
    assert job.finished_at is not None
    assert job.finished_at >= job.started_at
    job.raise_for_status()
    _assert_released_once(pool, handle)


@pytest.mark.asyncio
async def test_remote_failure_is_reported_on_job() -> None:
    """A failing build becomes FAILED with REMOTE_FAILURE."""
    pool = _CountingPool()
    engine = LocalBuildEngine(outcome=BuildOutcome(succeeded=False, reason="exit 2"))
    handle = await _checkout(pool)

    job = await BuildDispatcher(pool, engine).run(TARGET, handle)

    assert job.status is BuildStatus.FAILED
    assert job.error is not None
    assert job.error.kind is DispatchErrorKind.REMOTE_FAILURE
    assert "exit 2" in str(job.error)
    with pytest.raises(DispatchError):
        job.raise_for_status()
    _assert_released_once(pool, handle)


@pytest.mark.asyncio
async def test_lost_connection_is_a_remote_failure() -> None:
    """Errors while waiting are reported rather than raised."""
    pool = _CountingPool()
    handle = await _checkout(pool)

    job = await BuildDispatcher(pool, _DroppingEngine()).run(TARGET, handle)

    assert job.status is BuildStatus.FAILED
    assert job.error is not None
    assert job.error.kind is DispatchErrorKind.REMOTE_FAILURE
    assert isinstance(job.error.__cause__, ConnectionError)
    _assert_released_once(pool, handle)


@pytest.mark.asyncio
async def test_start_failure() -> None:
    """A build that never starts is FAILED with START_FAILURE."""
    pool = _CountingPool()
    engine = LocalBuildEngine(start_error=RuntimeError("project missing"))
    handle = await _checkout(pool)

    job = await BuildDispatcher(pool, engine).run(TARGET, handle)

    assert job.status is BuildStatus.FAILED
    assert job.build_id is None
    assert job.error is not None
    assert job.error.kind is DispatchErrorKind.START_FAILURE
    _assert_released_once(pool, handle)


@pytest.mark.asyncio
async def test_timeout_cancels_remote_build() -> None:
    """Exceeding the runner timeout cancels the build and marks it TIMED_OUT."""
    pool = _CountingPool()
    engine = LocalBuildEngine(duration=None)
    handle = await _checkout(pool, dt.timedelta(milliseconds=50))

    job = await BuildDispatcher(pool, engine).run(TARGET, handle)

    assert job.status is BuildStatus.TIMED_OUT
    assert job.error is not None
    assert job.error.kind is DispatchErrorKind.TIMED_OUT
    assert engine.cancel_calls == [job.build_id]
    _assert_released_once(pool, handle)


@pytest.mark.asyncio
async def test_failed_remote_cancel_still_releases() -> None:
    """A cancel error after a timeout is logged and the runner still freed."""
    pool = _CountingPool()
    engine = LocalBuildEngine(duration=None, cancel_error=RuntimeError("gone"))
    handle = await _checkout(pool, dt.timedelta(milliseconds=50))

    job = await BuildDispatcher(pool, engine).run(TARGET, handle)

    assert job.status is BuildStatus.TIMED_OUT
    _assert_released_once(pool, handle)


@pytest.mark.asyncio
async def test_cancelling_the_caller_aborts_and_releases() -> None:
    """Cancelling the dispatch task cancels the build and releases once."""
    pool = _CountingPool()
    engine = LocalBuildEngine(duration=None)
    handle = await _checkout(pool)

    task = asyncio.create_task(BuildDispatcher(pool, engine).run(TARGET, handle))
    await asyncio.sleep(0.02)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(engine.cancel_calls) == 1
    (build,) = engine.builds.values()
    assert build.cancelled
    _assert_released_once(pool, handle)


@pytest.mark.asyncio
async def test_hanging_start_times_out() -> None:
    """The runner timeout also bounds a start request that never returns."""
    pool = _CountingPool()
    engine = _HangingStartEngine()
    handle = await _checkout(pool, dt.timedelta(milliseconds=50))

    job = await asyncio.wait_for(BuildDispatcher(pool, engine).run(TARGET, handle), 5)

    assert job.status is BuildStatus.TIMED_OUT
    assert job.build_id is None
    assert job.error is not None
    assert job.error.kind is DispatchErrorKind.TIMED_OUT
    assert engine.cancel_calls == [], "no remote build exists to cancel"
    _assert_released_once(pool, handle)


@pytest.mark.asyncio
async def test_build_finishing_at_the_deadline_releases_once() -> None:
    """A build completing as its timeout fires still frees the runner once."""
    pool = _CountingPool()
    timeout = dt.timedelta(milliseconds=50)
    engine = LocalBuildEngine(duration=timeout.total_seconds())
    handle = await _checkout(pool, timeout)

    job = await BuildDispatcher(pool, engine).run(TARGET, handle)

    assert job.status in {BuildStatus.SUCCEEDED, BuildStatus.TIMED_OUT}
    if job.status is BuildStatus.TIMED_OUT:
        assert engine.cancel_calls == [job.build_id]
    _assert_released_once(pool, handle)


@pytest.mark.asyncio
async def test_cancelling_during_timeout_cleanup_releases_once() -> None:
    """Cancelling the caller while a timed-out build is being cancelled."""
    pool = _CountingPool()
    engine = _SlowCancelEngine()
    handle = await _checkout(pool, dt.timedelta(milliseconds=50))

    task = asyncio.create_task(BuildDispatcher(pool, engine).run(TARGET, handle))
    for _ in range(200):
        if engine.cancel_calls:
            break
        await asyncio.sleep(0.01)
    assert engine.cancel_calls, "timeout should have requested a remote cancel"

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    engine.cancel_gate.set()
    await asyncio.sleep(0.01)

    assert len(engine.cancel_calls) == 1
    (build,) = engine.builds.values()
    assert build.cancelled, "shielded remote cancel should still complete"
    _assert_released_once(pool, handle)
