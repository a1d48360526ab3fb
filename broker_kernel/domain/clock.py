"""
Clock -- injectable time source.

Audit entries and claim reprocess rows are stamped through a Clock handed
to the services that write them; nothing in the kernel reads the wall
clock on its own.  ``SystemClock`` is the only place that does.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    ``now()`` keeps returning the same instant until ``advance()`` moves it.
    """

    def __init__(self, start: datetime = DEFAULT_TEST_TIME):
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta | float = 1) -> datetime:
        """Move forward by ``delta`` (a timedelta or seconds); return the new time."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        self._current += delta
        return self._current
