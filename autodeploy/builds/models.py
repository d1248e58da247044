"""Build job records."""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt

    from autodeploy.errors import DispatchError
    from autodeploy.runners.models import RunnerHandle
    from autodeploy.targets.models import Target


class BuildStatus(enum.StrEnum):
    """Lifecycle of a build job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        """Return True once no further transition is possible."""
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {BuildStatus.SUCCEEDED, BuildStatus.FAILED, BuildStatus.TIMED_OUT}
)


@dataclasses.dataclass(frozen=True, slots=True)
class BuildOutcome:
    """Completion report from a build engine."""

    succeeded: bool
    reason: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class BuildJob:
    """Terminal record of one build, written once by ``BuildDispatcher``."""

    job_id: str
    target: Target
    runner: RunnerHandle
    started_at: dt.datetime
    status: BuildStatus
    finished_at: dt.datetime | None = None
    build_id: str | None = None
    error: DispatchError | None = None

    @property
    def succeeded(self) -> bool:
        """Return True for successful builds."""
        return self.status is BuildStatus.SUCCEEDED

    def raise_for_status(self) -> None:
        """Raise the job's ``DispatchError`` if it did not succeed."""
        if self.error is not None:
            raise self.error
