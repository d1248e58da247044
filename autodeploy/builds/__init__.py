"""Build job dispatch onto pooled runners."""

from __future__ import annotations

from .dispatcher import BuildDispatcher
from .engine import BuildEngine, LocalBuild, LocalBuildEngine
from .models import BuildJob, BuildOutcome, BuildStatus

__all__ = [
    "BuildDispatcher",
    "BuildEngine",
    "BuildJob",
    "BuildOutcome",
    "BuildStatus",
    "LocalBuild",
    "LocalBuildEngine",
]
