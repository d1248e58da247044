"""ASGI lifespan middleware for the autodeploy service.

Falcon calls ``process_startup`` and ``process_shutdown`` once per server
process. Startup runs any preparation coroutines (creating runner tables,
restoring the runner pool) and then launches the idle reaper. Shutdown stops
the reaper and cancels deployments that are still in flight so their
runners are released before the process exits.

Usage
-----
Register the middleware when creating the Falcon app::

    lifespan = AutodeployLifespan(orchestrator=orchestrator, reaper=reaper)
    app = falcon.asgi.App(middleware=[lifespan])

"""

from __future__ import annotations

import asyncio
import contextlib
import typing as typ

from autodeploy.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from autodeploy.orchestrator import AutodeployOrchestrator
    from autodeploy.runners import IdleReaper

__all__ = ["AutodeployLifespan", "StartupHook"]

logger = get_logger(__name__)

type StartupHook = typ.Callable[[], cabc.Awaitable[object]]


class AutodeployLifespan:
    """Start and stop the background parts of the service.

    Parameters
    ----------
    orchestrator
        Orchestrator whose background deployments are cancelled on shutdown.
    reaper
        Idle reaper run as a background task between startup and shutdown.
    startup
        Coroutine functions awaited in order before the reaper starts.

    """

    def __init__(
        self,
        *,
        orchestrator: AutodeployOrchestrator | None = None,
        reaper: IdleReaper | None = None,
        startup: cabc.Sequence[StartupHook] = (),
    ) -> None:
        """Initialize the middleware with the components it manages."""
        self._orchestrator = orchestrator
        self._reaper = reaper
        self._startup = tuple(startup)
        self._reaper_task: asyncio.Task[None] | None = None

    async def process_startup(
        self, _scope: dict[str, typ.Any], _event: dict[str, typ.Any]
    ) -> None:
        """Run startup hooks and launch the reaper."""
        for hook in self._startup:
            await hook()
        if self._reaper is not None:
            self._reaper_task = asyncio.create_task(
                self._reaper.run(), name="autodeploy:idle-reaper"
            )
            log_info(logger, "Idle runner reaper started")

    async def process_shutdown(
        self, _scope: dict[str, typ.Any], _event: dict[str, typ.Any]
    ) -> None:
        """Stop the reaper, then cancel and await in-flight deployments."""
        task, self._reaper_task = self._reaper_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            log_info(logger, "Idle runner reaper stopped")
        if self._orchestrator is not None and self._orchestrator.in_flight:
            log_info(
                logger,
                "Cancelling %d in-flight deployment(s)",
                self._orchestrator.in_flight,
            )
            await self._orchestrator.drain(cancel=True)
