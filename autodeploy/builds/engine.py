"""Build engine protocol and the in-process implementation."""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from .models import BuildOutcome

if typ.TYPE_CHECKING:
    from autodeploy.runners.models import RunnerHandle
    from autodeploy.targets.models import Target


@typ.runtime_checkable
class BuildEngine(typ.Protocol):
    """Remote build execution service."""

    async def start(self, job_id: str, target: Target, runner: RunnerHandle) -> str:
        """Start a build on ``runner`` and return the remote build id."""
        ...

    async def wait(self, build_id: str) -> BuildOutcome:
        """Block until the remote build finishes."""
        ...

    async def cancel(self, build_id: str) -> None:
        """Stop a remote build that is still running."""
        ...


@dataclasses.dataclass(slots=True)
class LocalBuild:
    """Bookkeeping for one build started on ``LocalBuildEngine``."""

    build_id: str
    job_id: str
    target: Target
    runner: RunnerHandle
    cancelled: bool = False


class LocalBuildEngine:
    """In-process build engine for development and tests.

    Each build "runs" for ``duration`` seconds and then reports ``outcome``.
    ``duration=None`` means the build never finishes on its own.
    """

    def __init__(
        self,
        *,
        duration: float | None = 0.0,
        outcome: BuildOutcome | None = None,
        start_error: BaseException | None = None,
        cancel_error: BaseException | None = None,
    ) -> None:
        """Script how builds behave."""
        self.duration = duration
        self.outcome = outcome or BuildOutcome(succeeded=True)
        self.start_error = start_error
        self.cancel_error = cancel_error
        self.builds: dict[str, LocalBuild] = {}
        self.cancel_calls: list[str] = []

    async def start(self, job_id: str, target: Target, runner: RunnerHandle) -> str:
        """Register the build, or raise ``start_error`` if one is scripted."""
        if self.start_error is not None:
            raise self.start_error
        build_id = f"{runner.machine_id}:{job_id}"
        self.builds[build_id] = LocalBuild(
            build_id=build_id, job_id=job_id, target=target, runner=runner
        )
        return build_id

    async def wait(self, build_id: str) -> BuildOutcome:
        """Sleep for ``duration`` and return the scripted outcome."""
        if self.duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(self.duration)
        if self.builds[build_id].cancelled:
            return BuildOutcome(succeeded=False, reason="cancelled")
        return self.outcome

    async def cancel(self, build_id: str) -> None:
        """Mark the build cancelled."""
        self.cancel_calls.append(build_id)
        if self.cancel_error is not None:
            raise self.cancel_error
        self.builds[build_id].cancelled = True
