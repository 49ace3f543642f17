"""
Time Bucketer — calendar-day and ISO-8601 week keys.

Every aggregator groups by one of these keys. Keys are computed in UTC so
two events on the same UTC calendar day always land in the same bucket,
whatever the caller's local time zone.

ISO week attribution follows ISO-8601: the week belongs to the year of its
Thursday. Dec 29-31 can therefore fall in week 1 of the next year and
Jan 1-3 in week 52/53 of the previous one.
"""

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

HOUR_SECONDS = 3600.0
DAY_SECONDS = 86400.0

_WEEK_KEY_PATTERN = re.compile(r"^(\d{4})-W(\d{2})$")

DateLike = Union[datetime, date]


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_date(value: DateLike) -> date:
    """UTC calendar date of a datetime; dates pass through unchanged."""
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value


def day_key(value: DateLike) -> str:
    """
    Calendar-day key of a timestamp.

    Args:
        value: datetime (converted to UTC) or date

    Returns:
        "YYYY-MM-DD"
    """
    return utc_date(value).isoformat()


def iso_week_key(value: DateLike) -> str:
    """
    ISO-8601 week key of a timestamp.

    The date is shifted to the Thursday of its week; the ISO year is the
    Thursday's year and the week number is
    ceil(((thursday - Jan 1 of that year) in days + 1) / 7).

    Args:
        value: datetime (converted to UTC) or date

    Returns:
        "{iso_year}-W{week:02d}", e.g. "2025-W01" for 2024-12-31

    Example:
        >>> iso_week_key(date(2021, 1, 1))
        '2020-W53'
    """
    day = utc_date(value)
    thursday = day + timedelta(days=4 - day.isoweekday())
    year_start = date(thursday.year, 1, 1)
    week = math.ceil(((thursday - year_start).days + 1) / 7)
    return f"{thursday.year}-W{week:02d}"


def _parse_week_key(week_key: str) -> tuple[int, int]:
    match = _WEEK_KEY_PATTERN.match(week_key or "")
    if not match:
        raise ValueError(f"Invalid ISO week key '{week_key}'. Expected 'YYYY-Www'")
    return int(match.group(1)), int(match.group(2))


def week_label(week_key: str) -> str:
    """Display label of a week key: "2025-W01" -> "W01 · 2025"."""
    year, week = _parse_week_key(week_key)
    return f"W{week:02d} · {year}"


def week_start(week_key: str) -> date:
    """
    Monday of the ISO week named by ``week_key``.

    Raises:
        ValueError: If the key is malformed or names a week that does not exist
    """
    year, week = _parse_week_key(week_key)
    return date.fromisocalendar(year, week, 1)


def day_range(end: DateLike, days: int) -> list[str]:
    """
    Consecutive day keys of a window ending on ``end`` (inclusive).

    Args:
        end: Last day of the window
        days: Window length

    Returns:
        ``days`` keys in ascending order
    """
    last = utc_date(end)
    return [(last - timedelta(days=offset)).isoformat() for offset in range(days - 1, -1, -1)]


def hours_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    """Elapsed hours from ``start`` to ``end``, None if either is unknown."""
    if start is None or end is None:
        return None
    return (to_utc(end) - to_utc(start)).total_seconds() / HOUR_SECONDS


def days_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    """Elapsed days from ``start`` to ``end``, None if either is unknown."""
    if start is None or end is None:
        return None
    return (to_utc(end) - to_utc(start)).total_seconds() / DAY_SECONDS
