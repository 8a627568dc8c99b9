"""
Clock -- injectable source of "today".

Services never call ``date.today()`` directly: the lifecycle service asks its
clock when deciding whether a committed end date is already past (OVERDUE),
the ledger stamps ``charged_on`` from it, and the overdue sweep uses it as
its cut-off.  Tests inject ``DeterministicClock``.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` is timezone-aware; ``today()`` is its UTC calendar date."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock frozen at ``fixed_time`` (default 2024-01-01 12:00 UTC).

    Time moves only through ``set_time``, ``set_today`` and ``advance_days``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set_time(self, time: datetime) -> None:
        self._now = time

    def set_today(self, day: date) -> None:
        """Move to noon UTC on ``day``."""
        self._now = datetime(day.year, day.month, day.day, 12, 0, tzinfo=timezone.utc)

    def advance_days(self, days: int = 1) -> None:
        self._now += timedelta(days=days)
