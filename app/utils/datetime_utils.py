"""
Common date/time utility functions for consistent date/time handling across the application

Storage: All dates are stored in UTC
Display: Prescription documents show dates as "DD Mon YYYY" (e.g. "07 Mar 2025")

Calendar-day comparisons (the same-day edit window) are made on the UTC date.
"""

from datetime import date, datetime, timedelta, timezone

DISPLAY_DATE_FORMAT = "%d %b %Y"


def as_utc(dt: datetime) -> datetime:
    """
    Convert dt to tz-aware UTC.
    If dt is naive, we treat it as UTC (SQLite hands back naive datetimes).

    Args:
        dt: datetime object (naive or timezone-aware)

    Returns:
        datetime object in UTC timezone
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def parse_iso_string(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 string to UTC datetime.
    Handles both with and without 'Z' suffix.

    Args:
        iso_string: ISO 8601 string (e.g., "2024-12-28T10:30:00.000Z" or "2024-12-28T10:30:00+00:00")

    Returns:
        datetime object in UTC timezone
    """
    # Replace 'Z' with '+00:00' for consistent parsing
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"

    dt = datetime.fromisoformat(iso_string)
    return as_utc(dt)


def utc_calendar_day(dt: datetime) -> date:
    return as_utc(dt).date()


def is_same_calendar_day(first: datetime, second: datetime) -> bool:
    """
    True when both instants fall on the same UTC calendar day.
    23:59 and 00:01 the next day are different days even though they are
    two minutes apart.
    """
    return utc_calendar_day(first) == utc_calendar_day(second)


def format_display_date(value: datetime | date | str | None) -> str:
    """
    Format a date for printed documents ("07 Mar 2025").

    Accepts datetimes, dates and ISO strings. Returns "" for None and
    falls back to the first 10 characters of unparseable strings.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        try:
            value = parse_iso_string(value)
        except ValueError:
            return value[:10]
    if isinstance(value, datetime):
        value = as_utc(value)
    return value.strftime(DISPLAY_DATE_FORMAT)


def add_days(dt: datetime, days: int) -> datetime:
    return as_utc(dt) + timedelta(days=days)
