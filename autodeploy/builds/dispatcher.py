"""Run build jobs on checked-out runners.

``BuildDispatcher.run`` owns the runner handle it is given: the handle goes
back to the pool exactly once when the job reaches a terminal state, whether
it succeeded, failed, timed out, or the calling task was cancelled.
"""

from __future__ import annotations

import asyncio
import typing as typ
import uuid

from autodeploy.common.time import utcnow
from autodeploy.errors import DispatchError
from autodeploy.logging import get_logger, log_warning
from autodeploy.observability import AutodeployEventLogger

from .models import BuildJob, BuildStatus

if typ.TYPE_CHECKING:
    import datetime as dt

    from autodeploy.common.time import Clock
    from autodeploy.runners.models import RunnerHandle
    from autodeploy.runners.pool import RunnerPool
    from autodeploy.targets.models import Target

    from .engine import BuildEngine

logger = get_logger(__name__)


class BuildDispatcher:
    """Start builds, enforce their timeout, and release their runner."""

    def __init__(
        self,
        pool: RunnerPool,
        engine: BuildEngine,
        *,
        clock: Clock = utcnow,
        event_logger: AutodeployEventLogger | None = None,
    ) -> None:
        """Bind the pool that owns runners and the engine that runs builds."""
        self._pool = pool
        self._engine = engine
        self._clock = clock
        self._events = event_logger or AutodeployEventLogger()

    async def run(self, target: Target, runner: RunnerHandle) -> BuildJob:
        """Run one build for ``target`` on ``runner``.

        Returns
        -------
        BuildJob
            Terminal job. ``error`` holds a ``DispatchError`` unless the build
            succeeded.

        Raises
        ------
        asyncio.CancelledError
            When the calling task is cancelled; the remote build is cancelled
            and the runner released first.

        """
        try:
            return await self._execute(target, runner)
        finally:
            await asyncio.shield(self._pool.release(runner))

    async def _execute(self, target: Target, runner: RunnerHandle) -> BuildJob:
        job_id = uuid.uuid4().hex
        started_at = self._clock()
        self._events.log_build_transition(job_id, target.stage, BuildStatus.QUEUED)

        # The runner timeout bounds the whole build, start included.
        deadline = asyncio.timeout(runner.spec.timeout.total_seconds())
        build_id: str | None = None
        try:
            async with deadline:
                try:
                    build_id = await self._engine.start(job_id, target, runner)
                except Exception as exc:  # noqa: BLE001 - reported on the job
                    error = DispatchError.start_failure(job_id, exc)
                    error.__cause__ = exc
                    return self._finish(
                        job_id,
                        target,
                        runner,
                        started_at,
                        BuildStatus.FAILED,
                        error=error,
                    )
                self._events.log_build_transition(
                    job_id, target.stage, BuildStatus.RUNNING
                )
                outcome = await self._engine.wait(build_id)
        except asyncio.CancelledError:
            if build_id is not None:
                await asyncio.shield(self._cancel_remote(build_id))
            raise
        except Exception as exc:  # noqa: BLE001 - reported on the job
            if isinstance(exc, TimeoutError) and deadline.expired():
                # No remote build exists when the deadline hits during start.
                if build_id is not None:
                    await asyncio.shield(self._cancel_remote(build_id))
                error = DispatchError.timed_out(job_id, runner.spec.timeout)
                status = BuildStatus.TIMED_OUT
            else:
                error = DispatchError.remote_failure(
                    job_id, f"{type(exc).__name__}: {exc}"
                )
                status = BuildStatus.FAILED
            error.__cause__ = exc
            return self._finish(
                job_id,
                target,
                runner,
                started_at,
                status,
                build_id=build_id,
                error=error,
            )

        if outcome.succeeded:
            return self._finish(
                job_id,
                target,
                runner,
                started_at,
                BuildStatus.SUCCEEDED,
                build_id=build_id,
            )
        return self._finish(
            job_id,
            target,
            runner,
            started_at,
            BuildStatus.FAILED,
            build_id=build_id,
            error=DispatchError.remote_failure(job_id, outcome.reason),
        )

    async def _cancel_remote(self, build_id: str) -> None:
        try:
            await self._engine.cancel(build_id)
        except Exception as exc:  # noqa: BLE001 - the job is terminal either way
            log_warning(
                logger,
                "Cancelling remote build %s failed: %s",
                build_id,
                exc,
                exc_info=exc,
            )

    def _finish(  # noqa: PLR0913
        self,
        job_id: str,
        target: Target,
        runner: RunnerHandle,
        started_at: dt.datetime,
        status: BuildStatus,
        *,
        build_id: str | None = None,
        error: DispatchError | None = None,
    ) -> BuildJob:
        job = BuildJob(
            job_id=job_id,
            target=target,
            runner=runner,
            started_at=started_at,
            status=status,
            finished_at=self._clock(),
            build_id=build_id,
            error=error,
        )
        self._events.log_build_transition(job_id, target.stage, status)
        self._events.log_build_completed(job)
        return job
