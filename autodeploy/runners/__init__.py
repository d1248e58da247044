"""Runner specifications and the pooled runner lifecycle."""

from __future__ import annotations

from .models import (
    Architecture,
    Compute,
    Engine,
    MachineProfile,
    RunnerHandle,
    RunnerRecord,
    RunnerSpec,
    RunnerState,
    format_timeout,
)
from .pool import DEFAULT_IDLE_THRESHOLD, RunnerPool
from .provisioner import LocalProvisioner, Provisioner
from .reaper import IdleReaper
from .spec import (
    DEFAULT_RUNNER_SPEC,
    TIMEOUT_CEILINGS,
    RunnerSpecResolver,
    canonicalize_runner,
    parse_timeout,
)
from .storage import (
    RunnerRecordRow,
    RunnerRecordStore,
    SqlRunnerRecordStore,
    init_runner_storage,
)

__all__ = [
    "DEFAULT_IDLE_THRESHOLD",
    "DEFAULT_RUNNER_SPEC",
    "TIMEOUT_CEILINGS",
    "Architecture",
    "Compute",
    "Engine",
    "IdleReaper",
    "LocalProvisioner",
    "MachineProfile",
    "Provisioner",
    "RunnerHandle",
    "RunnerPool",
    "RunnerRecord",
    "RunnerRecordRow",
    "RunnerRecordStore",
    "RunnerSpec",
    "RunnerSpecResolver",
    "RunnerState",
    "SqlRunnerRecordStore",
    "canonicalize_runner",
    "format_timeout",
    "init_runner_storage",
    "parse_timeout",
]
