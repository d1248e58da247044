"""Capture femtologging output so tests can assert on structured events."""

from __future__ import annotations

import contextlib
import dataclasses
import threading
import time
import typing as typ

from femtologging import get_logger


@dataclasses.dataclass(slots=True)
class CapturedRecord:
    """One log record seen by ``LogCapture``."""

    logger: str
    level: str
    message: str
    exc_info: object | None = None


class LogCapture:
    """Handler collecting records from the femtologging worker thread."""

    def __init__(self) -> None:
        """Start with no records."""
        self.records: list[CapturedRecord] = []
        self._condition = threading.Condition()

    def handle(self, logger: str, level: str, message: str) -> None:
        """Receive a plain record."""
        self._append(
            CapturedRecord(logger=str(logger), level=str(level), message=message)
        )

    def handle_record(self, record: dict[str, object]) -> None:
        """Receive a structured record."""
        self._append(
            CapturedRecord(
                logger=str(record.get("logger", "")),
                level=str(record.get("level", "")),
                message=str(record.get("message", "")),
                exc_info=record.get("exc_info"),
            )
        )

    def _append(self, record: CapturedRecord) -> None:
        with self._condition:
            self.records.append(record)
            self._condition.notify_all()

    def wait_for_count(self, count: int, timeout: float = 1.0) -> None:
        """Block until ``count`` records have arrived or fail."""
        deadline = time.monotonic() + timeout
        with self._condition:
            while len(self.records) < count:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._condition.wait(timeout=remaining)
        assert len(self.records) >= count, (
            f"Expected {count} records, got {len(self.records)}"
        )

    def wait_for_event(self, event: str, timeout: float = 1.0) -> CapturedRecord:
        """Return the first record whose message mentions ``event``."""
        deadline = time.monotonic() + timeout
        with self._condition:
            while True:
                for record in self.records:
                    if f"[{event}]" in record.message:
                        return record
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._condition.wait(timeout=remaining)
        seen = [record.message for record in self.records]
        msg = f"no {event} record captured; saw {seen}"
        raise AssertionError(msg)


@contextlib.contextmanager
def capture_femto_logs(
    logger_name: str,
    *,
    level: str = "TRACE",
) -> typ.Iterator[LogCapture]:
    """Capture records emitted on ``logger_name`` for the block's duration."""
    logger = get_logger(logger_name)
    previous_level = logger.level
    previous_propagate = logger.propagate
    logger.set_level(level)
    logger.set_propagate(False)
    capture = LogCapture()
    logger.add_handler(capture)
    try:
        yield capture
    finally:
        logger.remove_handler(capture)
        logger.set_level(previous_level)
        logger.set_propagate(previous_propagate)
