"""Service construction and FastAPI dependencies.

Services are built once per process in the application lifespan and
stored on ``app.state``; routes receive them through the dependencies
below, which tests override with in-memory fakes.
"""

from fastapi import Depends, Request

from event_search.backfill.service import EmbeddingBackfill
from event_search.config import Settings, get_settings
from event_search.embeddings.service import EmbeddingProvider, create_embedding_provider
from event_search.exceptions import ConfigurationError
from event_search.search.pipeline import EventSearchPipeline
from event_search.store.service import EventStore, MongoEventStore
from event_search.vectorindex.service import QdrantVectorIndex, VectorIndex


class SearchServices:
    """Process-wide service container.

    Owns the single embedding provider shared by search and backfill.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        vector_index: VectorIndex,
        event_store: EventStore,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.embedding_provider = embedding_provider
        self.vector_index = vector_index
        self.event_store = event_store
        self.pipeline = EventSearchPipeline(
            embedding_provider=embedding_provider,
            vector_index=vector_index,
            event_store=event_store,
            settings=settings.search,
        )
        self.backfill = EmbeddingBackfill(
            embedding_provider=embedding_provider,
            event_store=event_store,
            vector_index=vector_index,
            settings=settings.backfill,
        )

    async def close(self) -> None:
        """Close all owned clients."""
        await self.embedding_provider.close()
        await self.vector_index.close()
        await self.event_store.close()


def build_services(settings: Settings | None = None) -> SearchServices:
    """Construct production services from settings.

    No connection is opened and no model is loaded until first use.
    """
    settings = settings or get_settings()
    return SearchServices(
        embedding_provider=create_embedding_provider(settings.embedding),
        vector_index=QdrantVectorIndex(settings=settings.qdrant),
        event_store=MongoEventStore(settings=settings.mongodb),
        settings=settings,
    )


def get_services(request: Request) -> SearchServices:
    """Services built during application startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise ConfigurationError("Search services are not initialised")
    return services


def get_search_pipeline(
    services: SearchServices = Depends(get_services),
) -> EventSearchPipeline:
    """The shared search pipeline."""
    return services.pipeline


def get_backfill(
    services: SearchServices = Depends(get_services),
) -> EmbeddingBackfill:
    """The shared backfill service."""
    return services.backfill
