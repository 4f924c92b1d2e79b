"""Event document store module."""

from event_search.store.models import BulkWriteOutcome, Event, Location
from event_search.store.service import EventStore, MongoEventStore, normalize_event_id

__all__ = [
    "BulkWriteOutcome",
    "Event",
    "EventStore",
    "Location",
    "MongoEventStore",
    "normalize_event_id",
]
