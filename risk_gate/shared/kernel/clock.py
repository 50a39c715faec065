"""Injectable time sources."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Time source consumed by every time-dependent rule."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as a timezone-aware datetime."""
        pass


class SystemClock(Clock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Manually driven clock for deterministic evaluation.

    Naive datetimes are interpreted as UTC.
    """

    def __init__(self, current: datetime) -> None:
        self._current = _aware(current)

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        """Move the clock to an absolute point in time."""
        self._current = _aware(current)

    def advance(self, delta: timedelta) -> datetime:
        """Move the clock forward and return the new time."""
        self._current = self._current + delta
        return self._current


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
