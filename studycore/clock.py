"""
Time source for the scheduler and the session engine.

Everything that needs "now" or "today" receives a Clock so tests can drive
time explicitly.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current UTC timestamp (timezone aware)."""

    def today(self) -> date:
        """Current UTC calendar date used for due-date comparisons."""
        return self.now().date()


class SystemClock(Clock):
    """Wall clock in UTC. `today()` is the date of `now()`."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
