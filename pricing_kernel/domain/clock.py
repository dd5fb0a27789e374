"""
Injectable time source.

Services and the reconciliation runner take a Clock so that audit
``occurred_at`` values and report timestamps can be pinned in tests.
Nothing in pricing_engines reads the time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Fixed instant used by DeterministicClock when none is given
DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Returns timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    ``now()`` keeps returning the same instant until ``advance()`` is called,
    so several audit rows written in one test share one timestamp.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now
