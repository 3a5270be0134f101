"""
Time utilities for Sol Calendar.

All event times are stored in UTC as RFC 3339 strings. Calendar dates are
stored as ISO 8601 (YYYY-MM-DD). Month arithmetic clamps to the last day of
shorter months.
"""

import calendar
from datetime import datetime, date, time, timedelta
from typing import Optional

import pytz


DATE_FORMAT = "%Y-%m-%d"
# Format produced by SQLite's datetime('now') column defaults
SQLITE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime, without microseconds."""
    return datetime.now(pytz.UTC).replace(microsecond=0)


def to_utc_datetime(dt: datetime) -> datetime:
    """
    Normalize a datetime to UTC.

    Naive datetimes are taken to already be in UTC.
    """
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def utc_datetime(day: date, at: time) -> datetime:
    """Combine a calendar date and a time of day into a UTC datetime."""
    return pytz.UTC.localize(datetime.combine(day, at.replace(tzinfo=None)))


def format_rfc3339(dt: datetime) -> str:
    """Format as RFC 3339 in UTC, e.g. 2025-01-06T09:00:00+00:00."""
    return to_utc_datetime(dt).isoformat()


def parse_timestamp(text: str) -> datetime:
    """
    Parse a stored timestamp into a UTC datetime.

    Accepts RFC 3339 (including a trailing 'Z') and SQLite's
    'YYYY-MM-DD HH:MM:SS' default format.

    Raises:
        ValueError: if the text is not a recognised timestamp.
    """
    text = text.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return to_utc_datetime(datetime.fromisoformat(text))
    except ValueError:
        return pytz.UTC.localize(datetime.strptime(text, SQLITE_TIMESTAMP_FORMAT))


def format_date(day: date) -> str:
    return day.strftime(DATE_FORMAT)


def parse_date(text: str) -> date:
    """Parse a YYYY-MM-DD date. Raises ValueError on malformed input."""
    return datetime.strptime(text, DATE_FORMAT).date()


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(day: date, months: int) -> Optional[date]:
    """
    Add calendar months, clamping the day to the target month's length.

    Returns None when the result falls outside the supported date range.
    """
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    if year < date.min.year or year > date.max.year:
        return None
    return date(year, month, min(day.day, days_in_month(year, month)))


def add_days(day: date, days: int) -> Optional[date]:
    """Add days, returning None on overflow of the supported date range."""
    try:
        return day + timedelta(days=days)
    except OverflowError:
        return None
