"""
Injectable clock for the engine.

Grid hold times, fill timestamps and event ordering all read ``now()`` from a
provider so tests can pin and step time deterministically.

Usage (live)::

    clock = LiveTimeProvider()
    clock.now()                    # datetime.now(UTC)

Usage (tests)::

    clock = ManualTimeProvider(start=datetime(2024, 1, 1, tzinfo=UTC))
    clock.advance(timedelta(hours=25))
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

UTC = timezone.utc


class TimeProvider(ABC):
    """Source of the current UTC time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return current datetime (UTC)."""
        ...

    @abstractmethod
    def monotonic(self) -> float:
        """Return monotonic seconds."""
        ...


class LiveTimeProvider(TimeProvider):
    """Reads the system clocks."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()


class ManualTimeProvider(TimeProvider):
    """
    Clock that only moves when told to.

    Args:
        start: Initial time. Naive datetimes are treated as UTC.
            Defaults to 2024-01-01 00:00 UTC.
    """

    def __init__(self, start: datetime | None = None) -> None:
        if start is None:
            start = datetime(2024, 1, 1, tzinfo=UTC)
        if start.tzinfo is None:
            start = start.replace(tzinfo=UTC)
        self._current = start
        self._origin = start

    def now(self) -> datetime:
        return self._current

    def monotonic(self) -> float:
        return (self._current - self._origin).total_seconds()

    def advance(self, delta: timedelta) -> None:
        if delta.total_seconds() <= 0:
            raise ValueError(f"advance() requires positive delta, got {delta}")
        self._current += delta

    def set_time(self, dt: datetime) -> None:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        self._current = dt
