"""
Datetime helpers.

Timestamps are stored as naive UTC datetimes.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def get_now() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive input is returned as-is."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def days_between(start: Optional[datetime], end: Optional[datetime] = None) -> int:
    """Whole days elapsed from start to end (default now). Never negative."""
    if start is None:
        return 0
    end = end or get_now()
    return max((to_naive_utc(end) - to_naive_utc(start)).days, 0)


def add_days(dt: datetime, days: int) -> datetime:
    return dt + timedelta(days=days)
