import math
from datetime import datetime, timedelta, timezone
from typing import Optional

ONE_DAY = timedelta(days=1)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_as_of(as_of: Optional[datetime] = None) -> datetime:
    """
    Return the evaluation instant for time-dependent derivations.

    Callers (and tests) pin the clock by passing `as_of`; otherwise the
    current UTC time is used.
    """
    if as_of is None:
        return datetime.now(timezone.utc)
    return ensure_utc(as_of)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, rounded up (negative when end < start)."""
    return math.ceil((ensure_utc(end) - ensure_utc(start)) / ONE_DAY)
