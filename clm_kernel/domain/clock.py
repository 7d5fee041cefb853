"""
Injectable time source.

Services take a ``Clock`` in their constructor and never call
``datetime.now()`` themselves, so approval timestamps, version
``created_at`` values and audit ``occurred_at`` values can be pinned in
tests.  Engines are handed timestamps and never read time.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta


class Clock(ABC):
    """Source of timezone-aware "now"."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        """Calendar date of ``now()`` in UTC; used for end-date checks."""
        return self.now().astimezone(UTC).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Starts at 2024-01-01 12:00 UTC unless ``start`` is given.  ``tick()``
    moves one second forward so successive workflow steps get distinct,
    ordered timestamps.
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __init__(self, start: datetime | None = None):
        self._current = start or self.DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        self.advance()
        return self._current
