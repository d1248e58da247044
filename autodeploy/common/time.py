"""Clock helpers.

Every component that stamps or compares times takes a ``Clock`` so tests can
drive time forward deterministically.
"""

from __future__ import annotations

import datetime as dt
import typing as typ

type Clock = typ.Callable[[], dt.datetime]


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp."""
    return dt.datetime.now(dt.UTC)


class ManualClock:
    """Clock that only moves when told to.

    Examples
    --------
    >>> clock = ManualClock(dt.datetime(2025, 1, 1, tzinfo=dt.UTC))
    >>> clock.advance(dt.timedelta(days=8))
    >>> clock().day
    9

    """

    def __init__(self, start: dt.datetime) -> None:
        """Start the clock at an aware ``start`` timestamp."""
        if start.tzinfo is None:
            msg = "ManualClock requires a timezone-aware start time"
            raise ValueError(msg)
        self._now = start

    def __call__(self) -> dt.datetime:
        """Return the current simulated time."""
        return self._now

    def advance(self, delta: dt.timedelta) -> None:
        """Move the clock forward by ``delta``."""
        if delta < dt.timedelta(0):
            msg = "ManualClock cannot move backwards"
            raise ValueError(msg)
        self._now += delta
