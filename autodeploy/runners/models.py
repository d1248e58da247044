"""Runner specifications, pool records, and handles."""

from __future__ import annotations

import dataclasses
import datetime as dt
import enum
import hashlib

import msgspec


class Engine(enum.StrEnum):
    """Build services that can host a runner."""

    CODEBUILD = "codebuild"


class Architecture(enum.StrEnum):
    """CPU architecture of the build machine."""

    X86_64 = "x86_64"
    ARM64 = "arm64"


class Compute(enum.StrEnum):
    """Compute size of the build machine."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"


@dataclasses.dataclass(frozen=True, slots=True)
class MachineProfile:
    """Hardware behind one architecture/compute combination."""

    memory_gb: int
    vcpus: int
    compute_type: str
    environment_type: str


MACHINE_PROFILES: dict[tuple[Architecture, Compute], MachineProfile] = {
    (Architecture.X86_64, Compute.SMALL): MachineProfile(
        3, 2, "BUILD_GENERAL1_SMALL", "LINUX_CONTAINER"
    ),
    (Architecture.X86_64, Compute.MEDIUM): MachineProfile(
        7, 4, "BUILD_GENERAL1_MEDIUM", "LINUX_CONTAINER"
    ),
    (Architecture.X86_64, Compute.LARGE): MachineProfile(
        15, 8, "BUILD_GENERAL1_LARGE", "LINUX_CONTAINER"
    ),
    (Architecture.X86_64, Compute.XLARGE): MachineProfile(
        30, 16, "BUILD_GENERAL1_XLARGE", "LINUX_CONTAINER"
    ),
    (Architecture.ARM64, Compute.SMALL): MachineProfile(
        4, 2, "BUILD_GENERAL1_SMALL", "ARM_CONTAINER"
    ),
    (Architecture.ARM64, Compute.LARGE): MachineProfile(
        8, 4, "BUILD_GENERAL1_LARGE", "ARM_CONTAINER"
    ),
}


def format_timeout(timeout: dt.timedelta) -> str:
    """Render a timeout as ``"<n> hour(s)"`` or ``"<n> minute(s)"``."""
    seconds = int(timeout.total_seconds())
    if seconds > 0 and seconds % 3600 == 0:
        hours = seconds // 3600
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    if seconds > 0 and seconds % 60 == 0 and timeout.microseconds == 0:
        minutes = seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{timeout.total_seconds():g} seconds"


class RunnerSpec(msgspec.Struct, kw_only=True, frozen=True):
    """Canonical description of a build machine.

    Build one through ``canonicalize_runner`` so defaults and engine
    constraints are applied; two specs with equal fields share a pool key.
    """

    engine: Engine = Engine.CODEBUILD
    architecture: Architecture = Architecture.X86_64
    compute: Compute = Compute.SMALL
    timeout: dt.timedelta = dt.timedelta(hours=1)

    @property
    def key(self) -> str:
        """Return the pool key: a SHA-256 digest of the canonical fields."""
        canonical = "|".join(
            (
                self.engine.value,
                self.architecture.value,
                self.compute.value,
                str(int(self.timeout.total_seconds())),
            )
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @property
    def machine_profile(self) -> MachineProfile | None:
        """Return the hardware profile, or ``None`` for invalid pairs."""
        return MACHINE_PROFILES.get((self.architecture, self.compute))

    def to_dict(self) -> dict[str, str]:
        """Render the spec in the runner hook's wire shape."""
        return {
            "engine": self.engine.value,
            "architecture": self.architecture.value,
            "compute": self.compute.value,
            "timeout": format_timeout(self.timeout),
        }


class RunnerState(enum.StrEnum):
    """Lifecycle of a pooled runner record."""

    PROVISIONING = "provisioning"
    READY = "ready"
    BUSY = "busy"
    RETIRING = "retiring"


@dataclasses.dataclass(frozen=True, slots=True)
class RunnerHandle:
    """Reference to a checked-out runner, returned by ``RunnerPool.acquire``."""

    key: str
    machine_id: str
    spec: RunnerSpec


@dataclasses.dataclass(slots=True)
class RunnerRecord:
    """Pool bookkeeping for one runner machine.

    Only ``RunnerPool`` mutates records; everything else sees copies.
    """

    key: str
    spec: RunnerSpec
    created_at: dt.datetime
    last_used_at: dt.datetime
    state: RunnerState
    machine_id: str | None = None

    def handle(self) -> RunnerHandle:
        """Return a handle for a record that has a machine."""
        if self.machine_id is None:
            msg = f"runner {self.key[:12]} has no machine yet"
            raise ValueError(msg)
        return RunnerHandle(key=self.key, machine_id=self.machine_id, spec=self.spec)

    def idle_for(self, now: dt.datetime) -> dt.timedelta:
        """Return how long the runner has been unused as of ``now``."""
        return now - self.last_used_at


__all__ = [
    "MACHINE_PROFILES",
    "Architecture",
    "Compute",
    "Engine",
    "MachineProfile",
    "RunnerHandle",
    "RunnerRecord",
    "RunnerSpec",
    "RunnerState",
    "format_timeout",
]
