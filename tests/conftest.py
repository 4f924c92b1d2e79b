"""Pytest configuration and shared fixtures.

In-memory stand-ins for the embedding provider, vector index and event
store let the ranking pipeline run without a model, Qdrant or MongoDB.
"""

import zlib
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from typing import Any

import numpy as np
import pytest
from httpx import ASGITransport, AsyncClient

from event_search.api.app import app
from event_search.api.dependencies import SearchServices, get_services
from event_search.config import BackfillSettings, SearchSettings, Settings
from event_search.embeddings.models import EmbeddingResult
from event_search.embeddings.service import EmbeddingProvider
from event_search.exceptions import EmbeddingUnavailable, IndexUnavailable
from event_search.store.models import BulkWriteOutcome, Event
from event_search.store.service import EventStore
from event_search.vectorindex.models import IndexMatch, VectorRecord
from event_search.vectorindex.service import VectorIndex

STUB_DIMENSIONS = 64


class StubEmbeddingProvider(EmbeddingProvider):
    """Deterministic hashed bag-of-words embeddings."""

    def __init__(self, dimensions: int = STUB_DIMENSIONS) -> None:
        self._dims = dimensions
        self.calls: list[str] = []
        self.failing_texts: set[str] = set()
        self.unavailable = False

    @property
    def model_name(self) -> str:
        return "stub-model"

    @property
    def dimensions(self) -> int:
        return self._dims

    def vector(self, text: str) -> list[float]:
        vec = np.zeros(self._dims)
        for token in text.lower().split():
            vec[zlib.crc32(token.encode()) % self._dims] += 1.0
        if not vec.any():
            vec[0] = 1.0
        return (vec / np.linalg.norm(vec)).tolist()

    async def embed(self, text: str) -> EmbeddingResult:
        self.calls.append(text)
        if self.unavailable or text in self.failing_texts:
            raise EmbeddingUnavailable("stub model unavailable")
        vector = self.vector(text)
        return EmbeddingResult(
            text=text, embedding=vector, model=self.model_name, dimensions=len(vector)
        )

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        return [await self.embed(text) for text in texts]


class InMemoryVectorIndex(VectorIndex):
    """Exact cosine search over an in-memory dict."""

    def __init__(self) -> None:
        self.vectors: dict[str, list[float]] = {}
        self.unavailable = False
        self.queries: list[dict[str, Any]] = []

    def _check(self) -> None:
        if self.unavailable:
            raise IndexUnavailable("index offline")

    async def nearest_neighbors(
        self,
        query_vector: list[float],
        candidate_pool_size: int,
        result_limit: int,
    ) -> list[IndexMatch]:
        if candidate_pool_size < result_limit:
            raise ValueError("candidate_pool_size must be >= result_limit")
        self._check()
        self.queries.append({"pool": candidate_pool_size, "limit": result_limit})
        query = np.asarray(query_vector)
        scored = [
            IndexMatch(
                event_id=event_id,
                score=float(np.dot(query, vec) / (np.linalg.norm(query) * np.linalg.norm(vec))),
            )
            for event_id, vec in self.vectors.items()
        ]
        scored.sort(key=lambda m: m.score, reverse=True)
        return scored[:result_limit]

    async def count(self) -> int:
        self._check()
        return len(self.vectors)

    async def upsert(self, records: list[VectorRecord]) -> int:
        self._check()
        for record in records:
            self.vectors[record.event_id] = record.vector
        return len(records)

    async def ensure_collection(self, dimensions: int) -> bool:
        return False


class InMemoryEventStore(EventStore):
    """Events and ticket prices held in dicts."""

    def __init__(self) -> None:
        self.events: dict[str, Event] = {}
        self.ticket_prices: dict[str, list[float]] = {}
        self.failing_writes: set[str] = set()
        self.find_calls: list[dict[str, Any]] = []
        self.bulk_calls: list[list[str]] = []

    def add(self, event: Event, prices: list[float] | None = None) -> None:
        self.events[event.id] = event
        self.ticket_prices[event.id] = list(prices or [])

    def _with_prices(self, event: Event) -> Event:
        prices = self.ticket_prices.get(event.id, [])
        return event.model_copy(
            update={
                "min_price": min(prices) if prices else None,
                "max_price": max(prices) if prices else None,
            }
        )

    async def fetch_events(self, event_ids: list[str]) -> list[Event]:
        return [self._with_prices(self.events[i]) for i in event_ids if i in self.events]

    async def find_events(self, match: dict[str, Any], limit: int) -> list[Event]:
        self.find_calls.append({"match": match, "limit": limit})
        return [self._with_prices(event) for event in list(self.events.values())[:limit]]

    async def bulk_update_embeddings(
        self,
        embeddings: dict[str, list[float]],
    ) -> BulkWriteOutcome:
        self.bulk_calls.append(list(embeddings))
        outcome = BulkWriteOutcome()
        for event_id, vector in embeddings.items():
            if event_id in self.failing_writes:
                outcome.failed[event_id] = "write rejected"
                continue
            self.events[event_id] = self.events[event_id].model_copy(
                update={"embedding": vector}
            )
            outcome.updated.append(event_id)
        return outcome


def _hex_id(n: int) -> str:
    """A valid 24-hex event id."""
    return f"{n:024x}"


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory for Event documents with sensible defaults."""

    def _make(n: int, **fields: Any) -> Event:
        document: dict[str, Any] = {
            "_id": _hex_id(n),
            "title": f"Event {n}",
            "description": f"Description of event {n}",
            "startTime": datetime(2024, 6, 1, 10, 0),
            "endTime": datetime(2024, 6, 1, 18, 0),
            "category": "Music",
            "eventType": "Concert",
            "artistName": f"Artist {n}",
            "location": {"fullAddress": f"{n} Main Street, Springfield"},
        }
        document.update(fields)
        return Event.model_validate(document)

    return _make


@pytest.fixture
def embedder() -> StubEmbeddingProvider:
    """Stub embedding provider."""
    return StubEmbeddingProvider()


@pytest.fixture
def vector_index() -> InMemoryVectorIndex:
    """Empty in-memory vector index."""
    return InMemoryVectorIndex()


@pytest.fixture
def event_store() -> InMemoryEventStore:
    """Empty in-memory event store."""
    return InMemoryEventStore()


@pytest.fixture
def search_settings() -> SearchSettings:
    """Search settings with defaults."""
    return SearchSettings()


@pytest.fixture
def services(
    embedder: StubEmbeddingProvider,
    vector_index: InMemoryVectorIndex,
    event_store: InMemoryEventStore,
) -> SearchServices:
    """Service container wired to the in-memory fakes."""
    settings = Settings(search=SearchSettings(), backfill=BackfillSettings(batch_size=2))
    return SearchServices(
        embedding_provider=embedder,
        vector_index=vector_index,
        event_store=event_store,
        settings=settings,
    )


@pytest.fixture
def index_event(
    embedder: StubEmbeddingProvider,
    vector_index: InMemoryVectorIndex,
    event_store: InMemoryEventStore,
) -> Callable[..., Event]:
    """Store an event with its embedding and index it."""

    def _index(event: Event, prices: list[float] | None = None, indexed: bool = True) -> Event:
        vector = embedder.vector(event.description)
        event = event.model_copy(update={"embedding": vector})
        event_store.add(event, prices)
        if indexed:
            vector_index.vectors[event.id] = vector
        return event

    return _index


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def service_client(services: SearchServices) -> AsyncGenerator[AsyncClient, None]:
    """Test client whose routes use the in-memory services."""
    app.dependency_overrides[get_services] = lambda: services
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
