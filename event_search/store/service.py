"""Event store interface and MongoDB implementation."""

from abc import ABC, abstractmethod
from typing import Any

from bson import Decimal128, ObjectId
from bson.errors import InvalidId
from pymongo import AsyncMongoClient, UpdateOne
from pymongo.errors import BulkWriteError, PyMongoError

from event_search.config import MongoSettings, get_settings
from event_search.exceptions import StoreError
from event_search.logging_config import get_logger
from event_search.store.models import BulkWriteOutcome, Event

logger = get_logger(__name__)

EMBEDDING_FIELD = "embeddedDescription"


def _to_plain(value: Any) -> Any:
    """Convert BSON-specific values into plain Python types."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return float(value.to_decimal())
    if isinstance(value, dict):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_plain(item) for item in value]
    return value


def _object_id(event_id: str) -> ObjectId | None:
    """Parse *event_id*, returning None when it is not a valid ObjectId."""
    try:
        return ObjectId(event_id)
    except (InvalidId, TypeError):
        return None


def normalize_event_id(event_id: str) -> str:
    """Return the canonical form of *event_id*.

    Valid ObjectIds are rendered the way stored events report them (lowercase
    hex); anything else is returned unchanged.
    """
    oid = _object_id(event_id)
    return str(oid) if oid is not None else event_id


class EventStore(ABC):
    """Abstract base class for the event document store.

    Events returned by the read methods carry ``min_price``/``max_price``
    computed from their ticket records at query time.
    """

    @abstractmethod
    async def fetch_events(self, event_ids: list[str]) -> list[Event]:
        """Fetch events by id.

        Unknown or malformed ids are omitted from the result; order is not
        guaranteed.

        Raises:
            StoreError: If the store query fails.
        """
        ...

    @abstractmethod
    async def find_events(self, match: dict[str, Any], limit: int) -> list[Event]:
        """Fetch up to *limit* events matching a store-side filter document.

        Raises:
            StoreError: If the store query fails.
        """
        ...

    @abstractmethod
    async def bulk_update_embeddings(
        self,
        embeddings: dict[str, list[float]],
    ) -> BulkWriteOutcome:
        """Write event embeddings as one unordered bulk operation.

        A failing item never aborts its siblings; per-id failures are
        reported in the outcome.

        Raises:
            StoreError: If the whole bulk operation could not be issued.
        """
        ...

    async def get_event(self, event_id: str) -> Event | None:
        """Fetch a single event, or None if it does not exist."""
        events = await self.fetch_events([event_id])
        return events[0] if events else None

    async def close(self) -> None:
        """Release resources held by the store client."""
        return None


class MongoEventStore(EventStore):
    """MongoDB event store.

    Ticket price aggregates are joined in with ``$lookup`` on every read.
    """

    def __init__(
        self,
        settings: MongoSettings | None = None,
        client: AsyncMongoClient | None = None,
    ) -> None:
        """Initialize the MongoDB store.

        Args:
            settings: MongoDB configuration.
            client: Existing client (for testing).
        """
        self._settings = settings or get_settings().mongodb
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> AsyncMongoClient:
        """Get or create MongoDB client."""
        if self._client is None:
            self._client = AsyncMongoClient(self._settings.uri.get_secret_value())
        return self._client

    def _events(self) -> Any:
        return self._get_client()[self._settings.database][self._settings.events_collection]

    async def close(self) -> None:
        """Close the MongoDB client."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    def _price_stages(self) -> list[dict[str, Any]]:
        """Aggregation stages attaching minPrice/maxPrice from tickets."""
        return [
            {
                "$lookup": {
                    "from": self._settings.tickets_collection,
                    "localField": "_id",
                    "foreignField": "eventId",
                    "as": "tickets",
                }
            },
            {
                "$addFields": {
                    "minPrice": {"$min": "$tickets.price"},
                    "maxPrice": {"$max": "$tickets.price"},
                }
            },
            {"$project": {"tickets": 0}},
        ]

    async def _aggregate(self, pipeline: list[dict[str, Any]]) -> list[Event]:
        try:
            cursor = await self._events().aggregate(pipeline)
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Event aggregation failed: {e}")
            raise StoreError(
                f"Failed to query events: {e}",
                details={"error": str(e)},
            ) from e

        return [Event.model_validate(_to_plain(doc)) for doc in documents]

    async def fetch_events(self, event_ids: list[str]) -> list[Event]:
        """Fetch events by id with ticket prices."""
        object_ids = [oid for oid in map(_object_id, event_ids) if oid is not None]
        if not object_ids:
            return []

        pipeline = [{"$match": {"_id": {"$in": object_ids}}}, *self._price_stages()]
        return await self._aggregate(pipeline)

    async def find_events(self, match: dict[str, Any], limit: int) -> list[Event]:
        """Fetch events matching *match* with ticket prices."""
        pipeline = [{"$match": match}, {"$limit": limit}, *self._price_stages()]
        return await self._aggregate(pipeline)

    async def bulk_update_embeddings(
        self,
        embeddings: dict[str, list[float]],
    ) -> BulkWriteOutcome:
        """Write embeddings with ``ordered=False`` so siblings survive failures."""
        outcome = BulkWriteOutcome()
        op_ids: list[str] = []
        operations: list[UpdateOne] = []

        for event_id, vector in embeddings.items():
            oid = _object_id(event_id)
            if oid is None:
                outcome.failed[event_id] = "Invalid event id"
                continue
            op_ids.append(event_id)
            operations.append(UpdateOne({"_id": oid}, {"$set": {EMBEDDING_FIELD: vector}}))

        if not operations:
            return outcome

        try:
            await self._events().bulk_write(operations, ordered=False)
        except BulkWriteError as e:
            for error in e.details.get("writeErrors", []):
                event_id = op_ids[error["index"]]
                outcome.failed[event_id] = error.get("errmsg", "Write failed")
            logger.warning(
                f"Bulk embedding write had {len(e.details.get('writeErrors', []))} failures",
                extra={"batch_size": len(operations)},
            )
        except PyMongoError as e:
            raise StoreError(
                f"Bulk embedding write failed: {e}",
                details={"batch_size": len(operations), "error": str(e)},
            ) from e

        outcome.updated = [event_id for event_id in op_ids if event_id not in outcome.failed]
        return outcome
