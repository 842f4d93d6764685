"""
Usage Cycle Arithmetic

Billing cycles are calendar months: a cycle started on Jan 31 ends on
Feb 28/29, one started on Mar 15 ends on Apr 15.
"""

import calendar
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's end."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def cycle_end(cycle_started_at: datetime) -> datetime:
    return add_months(ensure_utc(cycle_started_at), 1)


def cycle_elapsed(cycle_started_at: datetime, now: datetime) -> bool:
    """True once at least one calendar month has passed since the cycle began."""
    return ensure_utc(now) >= cycle_end(cycle_started_at)
