"""
Injectable time source.

Every timestamp the kernel writes (submitted, approved, issued, received
and closed stamps, movement and approval ``created_at``) comes from the
Clock handed to the service, never from ``datetime.now()``.  Reference
numbers take their year from it as well, so a pinned clock makes request
numbering reproducible in tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Anything with ``now()`` returning an aware UTC datetime."""

    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock:
    """
    A clock that only moves when told to.

    ``set_time`` pins a new instant; ``advance`` moves forward and returns
    the new instant.
    """

    DEFAULT_START = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._current = start or self.DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def set_time(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")
        self._current = instant

    def advance(self, *, days: int = 0, hours: int = 0, minutes: int = 0, seconds: int = 0) -> datetime:
        self._current += timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
        return self._current
