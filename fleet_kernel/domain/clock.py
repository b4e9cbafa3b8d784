"""
Clock -- injectable time source.

Responsibility:
    Services that stamp ``performed_at``, check booking lead times, decide
    whether a driver swap is still before the trip start, or time a trip
    receive a Clock instead of calling ``datetime.now()``.

Architecture position:
    Kernel > Domain -- pure, zero I/O except ``SystemClock``.

Invariants enforced:
    Every timestamp written to action history, correction history and trips
    comes from an injected clock, so tests can pin "now" and advance it.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock. ``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value until ``advance()`` or ``set_time()``
    is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 1, 1, 8, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta()

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._offset = timedelta()

    def advance(self, seconds: float = 0, *, minutes: float = 0, hours: float = 0) -> datetime:
        """Move time forward and return the new ``now()``."""
        self._offset += timedelta(seconds=seconds, minutes=minutes, hours=hours)
        return self.now()


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
