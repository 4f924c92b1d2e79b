"""Vector index interface and Qdrant implementation."""

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import TypeVar

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import UnexpectedResponse
from qdrant_client.models import Distance, PointStruct, SearchParams, VectorParams

from event_search.config import QdrantSettings, get_settings
from event_search.exceptions import ErrorCode, IndexUnavailable
from event_search.logging_config import get_logger
from event_search.observability.metrics import track_index_query
from event_search.vectorindex.models import IndexMatch, VectorRecord

logger = get_logger(__name__)

T = TypeVar("T")

# Qdrant point ids must be UUIDs or integers; event ids are mapped onto
# UUIDv5 values in this namespace and kept verbatim in the payload.
EVENT_POINT_NAMESPACE = uuid.UUID("6f1c2b4e-8a4d-5f0e-9b7a-3c2d1e0f4a5b")


def point_id(event_id: str) -> str:
    """Deterministic Qdrant point id for *event_id*."""
    return str(uuid.uuid5(EVENT_POINT_NAMESPACE, event_id))


def candidate_pool_size(
    indexed_count: int,
    result_limit: int,
    min_pool: int,
    max_pool: int,
) -> int:
    """Size the ANN candidate pool from the indexed population.

    The pool covers the whole indexed collection so approximate search does
    not under-sample large collections. Small collections use ``min_pool``.
    The result is capped at ``max_pool`` but never drops below
    ``result_limit``.
    """
    pool = max(indexed_count, min_pool)
    return max(min(pool, max_pool), result_limit)


class VectorIndex(ABC):
    """Abstract base class for the event embedding index."""

    @abstractmethod
    async def nearest_neighbors(
        self,
        query_vector: list[float],
        candidate_pool_size: int,
        result_limit: int,
    ) -> list[IndexMatch]:
        """Find the events whose embeddings are closest to *query_vector*.

        Args:
            query_vector: Query embedding.
            candidate_pool_size: Candidates examined by the ANN search.
            result_limit: Maximum matches to return.

        Returns:
            At most ``result_limit`` matches, most similar first.

        Raises:
            ValueError: If ``candidate_pool_size < result_limit``.
            IndexUnavailable: If the index is missing or unreachable.
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of indexed events.

        Raises:
            IndexUnavailable: If the index is missing or unreachable.
        """
        ...

    @abstractmethod
    async def upsert(self, records: list[VectorRecord]) -> int:
        """Insert or replace event embeddings.

        Returns:
            Number of records written.

        Raises:
            IndexUnavailable: If the index is missing or unreachable.
        """
        ...

    @abstractmethod
    async def ensure_collection(self, dimensions: int) -> bool:
        """Create the index if it does not exist.

        Returns:
            True if the index was created.
        """
        ...

    async def close(self) -> None:
        """Release resources held by the index client."""
        return None


class QdrantVectorIndex(VectorIndex):
    """Qdrant-backed event embedding index."""

    def __init__(
        self,
        settings: QdrantSettings | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize Qdrant vector index.

        Args:
            settings: Qdrant configuration.
            client: Existing client (for testing).
        """
        self._settings = settings or get_settings().qdrant
        self._client = client
        self._owns_client = client is None

    @property
    def collection(self) -> str:
        """Name of the backing collection."""
        return self._settings.collection_name

    async def _get_client(self) -> AsyncQdrantClient:
        """Get or create Qdrant client."""
        if self._client is None:
            api_key = None
            if self._settings.api_key:
                api_key = self._settings.api_key.get_secret_value()

            self._client = AsyncQdrantClient(
                url=self._settings.url,
                api_key=api_key,
            )
        return self._client

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    async def _run(self, call: Awaitable[T], operation: str) -> T:
        """Await a client call, translating failures into IndexUnavailable."""
        try:
            return await asyncio.wait_for(call, timeout=self._settings.timeout)
        except TimeoutError as e:
            raise IndexUnavailable(
                f"Vector index {operation} timed out",
                details={"collection": self.collection, "timeout": self._settings.timeout},
            ) from e
        except UnexpectedResponse as e:
            code = (
                ErrorCode.COLLECTION_NOT_FOUND
                if e.status_code == 404
                else ErrorCode.INDEX_UNAVAILABLE
            )
            raise IndexUnavailable(
                f"Vector index {operation} failed: {e}",
                code=code,
                details={"collection": self.collection, "status_code": e.status_code},
            ) from e
        except Exception as e:
            raise IndexUnavailable(
                f"Vector index {operation} failed: {e}",
                details={"collection": self.collection, "error": str(e)},
            ) from e

    async def nearest_neighbors(
        self,
        query_vector: list[float],
        candidate_pool_size: int,
        result_limit: int,
    ) -> list[IndexMatch]:
        """Query Qdrant, using ``hnsw_ef`` as the candidate pool size."""
        if candidate_pool_size < result_limit:
            raise ValueError(
                f"candidate_pool_size ({candidate_pool_size}) must be >= "
                f"result_limit ({result_limit})"
            )

        client = await self._get_client()
        start = time.perf_counter()

        # hnsw_ef widens the HNSW beam to the candidate pool
        try:
            response = await self._run(
                client.query_points(
                    collection_name=self.collection,
                    query=query_vector,
                    limit=result_limit,
                    search_params=SearchParams(hnsw_ef=candidate_pool_size),
                    with_payload=True,
                ),
                "query",
            )
        except IndexUnavailable:
            track_index_query(time.perf_counter() - start, success=False)
            raise

        track_index_query(time.perf_counter() - start)

        # Payload carries the original event id
        matches = [
            IndexMatch(
                event_id=str((point.payload or {}).get("event_id", point.id)),
                score=point.score if point.score is not None else 0.0,
            )
            for point in response.points
        ]
        matches.sort(key=lambda m: m.score, reverse=True)

        logger.debug(
            f"Index returned {len(matches)} candidates",
            extra={"pool_size": candidate_pool_size, "limit": result_limit},
        )
        return matches[:result_limit]

    async def count(self) -> int:
        """Approximate number of indexed events."""
        client = await self._get_client()
        result = await self._run(
            client.count(collection_name=self.collection, exact=False),
            "count",
        )
        return result.count

    async def upsert(self, records: list[VectorRecord]) -> int:
        """Upsert event embeddings into the collection."""
        if not records:
            return 0

        client = await self._get_client()
        points = [
            PointStruct(
                id=point_id(record.event_id),
                vector=record.vector,
                payload={**record.payload, "event_id": record.event_id},
            )
            for record in records
        ]

        await self._run(
            client.upsert(collection_name=self.collection, points=points),
            "upsert",
        )

        logger.debug(
            f"Upserted {len(points)} event embeddings",
            extra={"collection": self.collection},
        )
        return len(points)

    async def ensure_collection(self, dimensions: int) -> bool:
        """Create the cosine collection if absent."""
        client = await self._get_client()

        exists = await self._run(client.collection_exists(self.collection), "lookup")
        if exists:
            return False

        await self._run(
            client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(size=dimensions, distance=Distance.COSINE),
            ),
            "create",
        )
        logger.info(
            f"Created collection: {self.collection}",
            extra={"dimensions": dimensions},
        )
        return True
