"""
Clock -- injectable time source.

Engines never read the clock.  Services receive a ``Clock`` so that event
timestamps, audit run times and repair log entries are reproducible in
tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Time source handed to services by constructor injection."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""
        ...


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Controlled clock for tests and replays.

    ``now()`` returns the same instant until ``advance()`` or ``tick()``
    moves it.  ``tick()`` is handy when consecutive milestone events need
    distinct, increasing timestamps.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: float = 1) -> datetime:
        self._current = self._current + timedelta(seconds=seconds)
        return self._current

    def tick(self) -> datetime:
        """Advance one second and return the new time."""
        return self.advance(1)
