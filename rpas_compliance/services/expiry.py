"""
Expiry-window calculations shared by SFOC certificates and permits.

All comparisons happen in UTC. SQLite hands back naive datetimes, so naive
values are treated as UTC; bare dates are treated as midnight UTC.
"""

import math
from datetime import date, datetime, time, timezone

SECONDS_PER_DAY = 86400


def as_utc(value: date | datetime | None) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_until_expiry(expiry, now: datetime | None = None) -> int | None:
    """Whole days remaining, rounded up; zero or negative once expired."""
    expiry = as_utc(expiry)
    if expiry is None:
        return None
    now = as_utc(now) or datetime.now(timezone.utc)
    return math.ceil((expiry - now).total_seconds() / SECONDS_PER_DAY)


def is_expiring_soon(expiry, now: datetime | None = None, warning_days: int = 60) -> bool:
    days = days_until_expiry(expiry, now)
    return days is not None and 0 < days <= warning_days


def is_expired(expiry, now: datetime | None = None) -> bool:
    days = days_until_expiry(expiry, now)
    return days is not None and days <= 0


def permit_status(
    expiry,
    current_status: str | None = None,
    now: datetime | None = None,
    warning_days: int = 30,
) -> str:
    """
    Derive a permit status from its expiry date.

    ``suspended`` is set by hand and survives recalculation.
    """
    if current_status == "suspended":
        return "suspended"
    expiry = as_utc(expiry)
    if expiry is None:
        return "active"
    now = as_utc(now) or datetime.now(timezone.utc)
    if expiry < now:
        return "expired"
    if days_until_expiry(expiry, now) <= warning_days:
        return "expiring_soon"
    return "active"
