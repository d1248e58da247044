"""Periodic idle-runner reaper."""

from __future__ import annotations

import asyncio
import typing as typ

from autodeploy.common.time import utcnow
from autodeploy.logging import get_logger, log_exception, log_info

from .pool import DEFAULT_IDLE_THRESHOLD

if typ.TYPE_CHECKING:
    import datetime as dt

    from autodeploy.common.time import Clock

    from .models import RunnerHandle
    from .pool import RunnerPool

logger = get_logger(__name__)


class IdleReaper:
    """Sweep a ``RunnerPool`` for idle runners on a fixed interval.

    The clock is injected so tests can jump past the idle threshold without
    waiting.
    """

    def __init__(
        self,
        pool: RunnerPool,
        *,
        interval: float = 3600.0,
        idle_threshold: dt.timedelta = DEFAULT_IDLE_THRESHOLD,
        clock: Clock = utcnow,
    ) -> None:
        """Configure the sweep interval (seconds) and idle threshold."""
        self._pool = pool
        self._interval = interval
        self._idle_threshold = idle_threshold
        self._clock = clock

    async def sweep(self) -> list[RunnerHandle]:
        """Reap once using the injected clock."""
        retired = await self._pool.reap(self._clock(), self._idle_threshold)
        if retired:
            log_info(logger, "Idle sweep retired %d runner(s)", len(retired))
        return retired

    async def run(self) -> None:
        """Sweep forever; a failed sweep is logged and the loop carries on."""
        while True:
            try:
                await self.sweep()
            except Exception as exc:  # noqa: BLE001 - the next sweep retries
                log_exception(logger, "Idle runner sweep failed", exc)
            await asyncio.sleep(self._interval)
