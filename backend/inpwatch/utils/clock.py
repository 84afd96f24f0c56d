"""UTC time helpers.

Timestamps are stored as naive UTC datetimes with second precision.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def to_storage(value: datetime) -> datetime:
    """Convert a datetime to naive UTC truncated to whole seconds.

    Naive input is taken to already be UTC.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0)


def utc_today(now: Optional[datetime] = None) -> date:
    """Calendar day (UTC) of ``now``."""
    return to_storage(now or utc_now()).date()


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """Half-open ``[start, end)`` storage bounds of a UTC calendar day."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)
