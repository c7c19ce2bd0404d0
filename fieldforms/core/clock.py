"""
Injectable time source.

Every freeze/expiry comparison in the engine reads the time from a Clock
so that expiry boundaries can be pinned in tests.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional


class Clock:
    """Source of the current UTC time."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Manually driven clock.

    Usage:
        clock = FixedClock(datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc))
        clock.advance(hours=2)
    """

    def __init__(self, current: datetime):
        self.current = ensure_utc(current)

    def now(self) -> datetime:
        return self.current

    def set(self, current: datetime) -> None:
        self.current = ensure_utc(current)

    def advance(self, delta: Optional[timedelta] = None, **kwargs) -> datetime:
        self.current = self.current + (delta or timedelta(**kwargs))
        return self.current


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def tracking_month(moment: datetime) -> date:
    """First day of the UTC calendar month containing ``moment``."""
    return ensure_utc(moment).date().replace(day=1)


def previous_month(month: date) -> date:
    """First day of the month before ``month``."""
    return (month.replace(day=1) - timedelta(days=1)).replace(day=1)


system_clock = SystemClock()
