"""
Time utilities for the Task Manager API.

This module provides a single source of truth for time operations,
ensuring consistency across all endpoints and the reminder job.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Current calendar day in UTC."""
    return utc_now().date()


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """
    Calculate the half-open UTC range covering a calendar day.

    Args:
        day: The calendar day

    Returns:
        Tuple of (start of day, start of next day) as timezone-aware datetimes
    """
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def seconds_until(hour: int, now: Optional[datetime] = None) -> float:
    """
    Seconds from now until the next occurrence of hour:00 UTC.

    If the hour has already passed today, the next day's occurrence is used.
    """
    now = now or utc_now()
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()
