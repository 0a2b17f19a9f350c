"""
Clock and timezone handling

Deadlines, decision dates and audit timestamps all come from an injected
provider so tests can freeze and advance the clock. Everything stored is
timezone-aware UTC; naive input is taken as UTC.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol


class TimeProvider(Protocol):
    def now(self) -> datetime:
        """Current time, timezone-aware UTC"""
        ...


class RealTimeProvider:
    """System clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Frozen clock for tests; moves only when told to

    Defaults to the Unix epoch so a forgotten initial time is obvious.
    """

    __test__ = False

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._current_time = as_utc(initial_time) if initial_time else datetime(1970, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def advance_seconds(self, seconds: int) -> None:
        self._current_time += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current_time += timedelta(days=days)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def end_of_day(day: date) -> datetime:
    """Last second of a calendar day, UTC (a deadline given as a bare date)"""
    return datetime.combine(day, time(23, 59, 59), tzinfo=timezone.utc)


def parse_deadline(value: str) -> datetime:
    """
    ISO date or datetime to an aware UTC deadline

    Example:
        >>> parse_deadline("2025-01-25")
        datetime.datetime(2025, 1, 25, 23, 59, 59, tzinfo=datetime.timezone.utc)
    """
    if len(value) == 10:
        return end_of_day(date.fromisoformat(value))
    return as_utc(datetime.fromisoformat(value))
