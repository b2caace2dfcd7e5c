"""
Centralized timestamp handling for the analytics engine.

Ledger rows arrive as naive database datetimes, aware datetimes from API
payloads, ISO-8601 strings from imports, or epoch seconds. Everything is
normalized here to a timezone-aware UTC datetime so no downstream
component branches on representation.

Usage is attributed to the calendar day of the event in the configured
usage-day timezone (UTC unless configured otherwise).

Example: an event at 2024-01-02T03:00:00Z belongs to usage day Jan 2 in UTC,
         but to Jan 1 in "America/New_York".
"""
from datetime import datetime, date, timedelta
from typing import Optional, Union
import pytz


Timestampish = Union[datetime, date, str, int, float]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.UTC)


def to_utc(value: Timestampish) -> datetime:
    """
    Normalize any supported timestamp representation to aware UTC.

    Args:
        value: datetime (naive values are taken as UTC), date (midnight UTC),
               ISO-8601 string (a trailing "Z" is accepted) or epoch seconds

    Returns:
        Timezone-aware datetime in UTC

    Examples:
        >>> to_utc("2024-01-02T03:00:00Z")
        datetime.datetime(2024, 1, 2, 3, 0, tzinfo=<UTC>)
        >>> to_utc(datetime(2024, 1, 2, 3, 0))
        datetime.datetime(2024, 1, 2, 3, 0, tzinfo=<UTC>)
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return pytz.UTC.localize(value)
        return value.astimezone(pytz.UTC)

    if isinstance(value, date):
        return pytz.UTC.localize(datetime(value.year, value.month, value.day))

    if isinstance(value, bool):
        raise TypeError("Booleans are not timestamps")

    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=pytz.UTC)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_utc(datetime.fromisoformat(text))

    raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")


def to_db(value: Timestampish) -> datetime:
    """Naive UTC datetime for storage in DateTime columns."""
    return to_utc(value).replace(tzinfo=None)


def usage_date(value: Timestampish, timezone: Optional[str] = None) -> date:
    """
    Calendar day an event counts towards.

    Args:
        value: Event timestamp in any supported representation
        timezone: IANA timezone string; None or "UTC" buckets by UTC date
    """
    dt = to_utc(value)
    if timezone and timezone != "UTC":
        dt = dt.astimezone(pytz.timezone(timezone))
    return dt.date()


def day_of_week(d: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""
    # date.weekday() is 0 = Monday
    return (d.weekday() + 1) % 7


def days_between(start: Timestampish, end: Timestampish) -> int:
    """Whole days elapsed from start to end (floored, never negative)."""
    elapsed = to_utc(end) - to_utc(start)
    if elapsed < timedelta(0):
        return 0
    return elapsed.days
