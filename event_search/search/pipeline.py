"""Event search pipeline orchestrator."""

import time
from typing import Any

from event_search.config import SearchSettings, get_settings
from event_search.embeddings.service import EmbeddingProvider
from event_search.exceptions import EventSearchError, IndexUnavailable, InvalidQuery
from event_search.logging_config import get_logger
from event_search.observability.metrics import track_index_fallback, track_search_request
from event_search.search.assembler import ResultAssembler
from event_search.search.filters import FilterEngine
from event_search.search.models import Candidate, SearchQuery, SearchResponse
from event_search.search.scoring import RelevanceScorer
from event_search.store.service import EventStore
from event_search.vectorindex.service import VectorIndex, candidate_pool_size

logger = get_logger(__name__)


class EventSearchPipeline:
    """Orchestrates semantic event search.

    Embeds the keyword, narrows the collection with the vector index,
    loads candidate events with their ticket prices, filters, re-ranks
    with exact similarity and paginates.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        vector_index: VectorIndex,
        event_store: EventStore,
        settings: SearchSettings | None = None,
        filter_engine: FilterEngine | None = None,
        scorer: RelevanceScorer | None = None,
        assembler: ResultAssembler | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            embedding_provider: Shared embedding provider.
            vector_index: Event embedding index.
            event_store: Event document store.
            settings: Ranking configuration.
            filter_engine: Predicate engine.
            scorer: Relevance scorer.
            assembler: Result assembler.
        """
        self._embedder = embedding_provider
        self._index = vector_index
        self._store = event_store
        self._settings = settings or get_settings().search
        self._filters = filter_engine or FilterEngine(
            require_keyword_match=self._settings.require_keyword_match
        )
        self._scorer = scorer or RelevanceScorer()
        self._assembler = assembler or ResultAssembler()

    @property
    def settings(self) -> SearchSettings:
        """Ranking configuration in use."""
        return self._settings

    async def search(self, query: SearchQuery) -> SearchResponse:
        """Run a filtered, ranked, paginated search.

        Args:
            query: Validated search query.

        Returns:
            The requested page; ``degraded`` is set when the vector index
            was unavailable and ranking fell back to a store scan.

        Raises:
            EmbeddingUnavailable: If the query cannot be embedded.
            IndexUnavailable: If the index fails and fallback is disabled.
            StoreError: If the event store fails.
        """
        start = time.perf_counter()
        mode = "vector"

        logger.info(
            "Processing event search",
            extra={
                "keyword_length": len(query.keyword),
                "page": query.page,
                "limit": query.limit,
                "sort": query.sort.value,
            },
        )

        try:
            query_vector = (await self._embedder.embed(query.keyword)).embedding

            try:
                candidates = await self._vector_candidates(query_vector)
            except IndexUnavailable as e:
                if not self._settings.index_fallback:
                    raise
                logger.warning(
                    f"Vector index unavailable, ranking from store scan: {e.message}",
                    extra={"error_code": e.code.value},
                )
                track_index_fallback()
                mode = "fallback"
                candidates = await self._fallback_candidates(query)

            filtered = self._filters.apply(candidates, query)
            ranked = self._scorer.rank(filtered, query_vector, query.keyword)
            response = self._assembler.assemble(
                ranked,
                page=query.page,
                limit=query.limit,
                sort=query.sort,
                degraded=mode == "fallback",
            )
        except EventSearchError:
            track_search_request(mode, time.perf_counter() - start, 0, None, success=False)
            raise

        top_score = max((c.cosine_similarity for c in ranked), default=None)
        track_search_request(mode, time.perf_counter() - start, len(ranked), top_score)

        logger.info(
            "Event search completed",
            extra={
                "mode": mode,
                "candidates": len(candidates),
                "matched": response.pagination.total,
                "returned": len(response.items),
            },
        )
        return response

    async def semantic_search(self, text: str, limit: int = 10) -> list[dict[str, Any]]:
        """Pure vector search without filters or pagination.

        Args:
            text: Free-text query.
            limit: Maximum events to return.

        Returns:
            Ranked events, most similar first.

        Raises:
            InvalidQuery: If *text* is empty or *limit* is not positive.
            EmbeddingUnavailable: If the query cannot be embedded.
            IndexUnavailable: If the vector index fails.
        """
        if not text or not text.strip():
            raise InvalidQuery("Missing query", details={"field": "query"})
        if limit < 1:
            raise InvalidQuery("limit must be >= 1", details={"limit": limit})

        start = time.perf_counter()
        try:
            query_vector = (await self._embedder.embed(text)).embedding
            candidates = await self._vector_candidates(query_vector, result_limit=limit)
            ranked = self._scorer.rank(candidates, query_vector, keyword="")
        except EventSearchError:
            track_search_request("semantic", time.perf_counter() - start, 0, None, success=False)
            raise

        top_score = ranked[0].cosine_similarity if ranked else None
        track_search_request("semantic", time.perf_counter() - start, len(ranked), top_score)
        return [candidate.to_ranked() for candidate in ranked[:limit]]

    async def _vector_candidates(
        self,
        query_vector: list[float],
        result_limit: int | None = None,
    ) -> list[Candidate]:
        """Candidate events from the vector index, in index order."""
        limit = result_limit or self._settings.result_limit
        indexed = await self._index.count()
        pool = candidate_pool_size(
            indexed,
            limit,
            self._settings.min_candidate_pool,
            self._settings.max_candidate_pool,
        )

        matches = await self._index.nearest_neighbors(query_vector, pool, limit)
        if not matches:
            return []

        events = await self._store.fetch_events([match.event_id for match in matches])
        by_id = {event.id: event for event in events}

        missing = len(matches) - sum(1 for match in matches if match.event_id in by_id)
        if missing:
            logger.debug(
                f"{missing} indexed events no longer exist in the store",
                extra={"indexed": len(matches)},
            )

        return [
            Candidate(event=by_id[match.event_id], index_score=match.score)
            for match in matches
            if match.event_id in by_id
        ]

    async def _fallback_candidates(self, query: SearchQuery) -> list[Candidate]:
        """Candidate events from a store scan narrowed by text predicates."""
        events = await self._store.find_events(
            self._filters.store_filter(query),
            self._settings.fallback_scan_limit,
        )
        return [Candidate(event=event) for event in events]
