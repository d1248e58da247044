"""Provisioner protocol and the in-process implementation.

The provisioner is the boundary to the infrastructure engine that actually
creates build machines. ``RunnerPool`` only ever talks to this protocol.
"""

from __future__ import annotations

import asyncio
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .models import RunnerSpec


@typ.runtime_checkable
class Provisioner(typ.Protocol):
    """Create and destroy build machines for runner specs."""

    async def provision(self, spec: RunnerSpec) -> str:
        """Create a machine for ``spec`` and return its opaque identifier."""
        ...

    async def teardown(self, machine_id: str) -> None:
        """Destroy the machine identified by ``machine_id``."""
        ...


class LocalProvisioner:
    """In-process provisioner for development and tests.

    Machines are names in a set. Optional ``delay`` simulates provider
    latency and ``fail_with`` makes the next provisions raise, which is how
    tests exercise error paths.
    """

    def __init__(
        self,
        *,
        delay: float = 0.0,
        fail_with: BaseException | None = None,
    ) -> None:
        """Configure simulated latency and an optional injected failure."""
        self.delay = delay
        self.fail_with = fail_with
        self.teardown_fail_with: BaseException | None = None
        self.machines: set[str] = set()
        self.provision_calls: list[RunnerSpec] = []
        self.teardown_calls: list[str] = []
        self._counter = 0

    async def provision(self, spec: RunnerSpec) -> str:
        """Record the call, wait ``delay`` seconds, and mint a machine id."""
        self.provision_calls.append(spec)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self._counter += 1
        machine_id = (
            f"autodeploy-{spec.architecture.value.replace('_', '-')}-"
            f"{spec.compute.value}-{spec.key[:8]}-{self._counter}"
        )
        self.machines.add(machine_id)
        return machine_id

    async def teardown(self, machine_id: str) -> None:
        """Forget ``machine_id``; raise ``KeyError`` if it was never created."""
        self.teardown_calls.append(machine_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.teardown_fail_with is not None:
            raise self.teardown_fail_with
        self.machines.remove(machine_id)

    @property
    def live_machines(self) -> cabc.Set[str]:
        """Return the machines currently alive."""
        return frozenset(self.machines)
