"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that domain and service code never call
    ``datetime.now()`` or ``date.today()`` directly.  Quote expiry and invoice
    overdue status are computed lazily against ``today()``, so every read of
    an effective status is reproducible in tests.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time receive a Clock instance via
        constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``today()`` is the calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self) -> date:
        """Get the current calendar date."""
        return self.now().date()


class SystemClock(Clock):
    """Production clock that returns actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()``, ``advance_days()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc
        )
        if self._fixed_time.tzinfo is None:
            self._fixed_time = self._fixed_time.replace(tzinfo=timezone.utc)
        self._offset = timedelta()

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time if time.tzinfo else time.replace(tzinfo=timezone.utc)
        self._offset = timedelta()

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._offset += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        """Advance the clock by whole days."""
        self._offset += timedelta(days=days)
