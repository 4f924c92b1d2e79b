"""Small helpers shared across modules."""

from event_search.utils.datetime_utils import parse_datetime, start_of_day, to_naive_utc

__all__ = [
    "parse_datetime",
    "start_of_day",
    "to_naive_utc",
]
