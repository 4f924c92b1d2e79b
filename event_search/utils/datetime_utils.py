"""Datetime helpers.

The store returns naive UTC datetimes, so every timestamp the search core
compares is normalised to that form.
"""

from datetime import UTC, date, datetime


def to_naive_utc(value: datetime) -> datetime:
    """Convert *value* to a naive datetime expressed in UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_datetime(value: str | date | datetime) -> datetime:
    """Parse an ISO-8601 date or datetime into naive UTC.

    Bare dates (``2024-06-01``) become midnight of that day.

    Raises:
        ValueError: If *value* is not a valid ISO-8601 string.
    """
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return to_naive_utc(datetime.fromisoformat(value.strip()))


def start_of_day(value: datetime) -> datetime:
    """Midnight of the day containing *value*."""
    return value.replace(hour=0, minute=0, second=0, microsecond=0)
