"""Batch recomputation of event description embeddings."""

import asyncio
from collections.abc import Iterator, Sequence
from typing import TypeVar

from event_search.backfill.models import BackfillItemResult, BackfillReport
from event_search.config import BackfillSettings, get_settings
from event_search.embeddings.models import EmbeddingResult
from event_search.embeddings.service import EmbeddingProvider
from event_search.exceptions import EventNotFound, IndexUnavailable, StoreError
from event_search.logging_config import get_logger
from event_search.observability.metrics import track_backfill_items
from event_search.store.models import Event
from event_search.store.service import EventStore, normalize_event_id
from event_search.vectorindex.models import VectorRecord
from event_search.vectorindex.service import VectorIndex

logger = get_logger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of *items* of at most *size* elements."""
    for i in range(0, len(items), size):
        yield items[i : i + size]


class EmbeddingBackfill:
    """Recomputes and stores embeddings for existing events.

    Embeddings are computed with bounded concurrency, written to the store
    in unordered bulk chunks and then mirrored into the vector index. Each
    event succeeds or fails on its own; no failure aborts the batch.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        event_store: EventStore,
        vector_index: VectorIndex,
        settings: BackfillSettings | None = None,
    ) -> None:
        """Initialize the backfill service.

        Args:
            embedding_provider: Shared embedding provider.
            event_store: Event document store.
            vector_index: Event embedding index.
            settings: Batch size and concurrency.
        """
        self._embedder = embedding_provider
        self._store = event_store
        self._index = vector_index
        self._settings = settings or get_settings().backfill

    async def backfill(self, event_ids: list[str]) -> BackfillReport:
        """Recompute embeddings for *event_ids*.

        Args:
            event_ids: Events to update. ObjectId strings are matched
                case-insensitively and duplicates are processed once.

        Returns:
            Per-id report in request order.

        Raises:
            StoreError: If the events cannot be looked up at all.
        """
        ids = list(dict.fromkeys(normalize_event_id(event_id) for event_id in event_ids))
        if not ids:
            return BackfillReport()

        logger.info(
            f"Backfilling embeddings for {len(ids)} events",
            extra={
                "batch_size": self._settings.batch_size,
                "concurrency": self._settings.concurrency,
            },
        )

        results: dict[str, BackfillItemResult] = {}
        events = {event.id: event for event in await self._store.fetch_events(ids)}
        for event_id in ids:
            if event_id not in events:
                results[event_id] = BackfillItemResult(
                    event_id=event_id, success=False, error="Event not found"
                )

        embeddings = await self._embed_events(
            [events[event_id] for event_id in ids if event_id in events],
            results,
        )

        for chunk in chunked(list(embeddings.items()), self._settings.batch_size):
            written = await self._write_chunk(dict(chunk), results)
            await self._index_chunk(written, results)

        report = BackfillReport(items=[results[event_id] for event_id in ids])
        track_backfill_items(len(report.succeeded), len(report.failed))

        logger.info(
            "Backfill completed",
            extra={"succeeded": len(report.succeeded), "failed": len(report.failed)},
        )
        return report

    async def embed_event(self, event_id: str) -> EmbeddingResult:
        """Recompute and store the embedding of a single event.

        Raises:
            EventNotFound: If the event does not exist.
            EmbeddingUnavailable: If the description cannot be embedded.
            StoreError: If the embedding cannot be written.
        """
        event = await self._store.get_event(event_id)
        if event is None:
            raise EventNotFound(event_id)

        result = await self._embedder.embed(event.description)
        outcome = await self._store.bulk_update_embeddings({event.id: result.embedding})
        if event.id in outcome.failed:
            raise StoreError(
                f"Failed to store embedding: {outcome.failed[event.id]}",
                details={"event_id": event.id},
            )

        try:
            await self._index.upsert([VectorRecord(event_id=event.id, vector=result.embedding)])
        except IndexUnavailable as e:
            logger.warning(
                f"Embedding stored but not indexed: {e.message}",
                extra={"event_id": event.id},
            )
        return result

    async def _embed_events(
        self,
        events: list[Event],
        results: dict[str, BackfillItemResult],
    ) -> dict[str, list[float]]:
        """Embed event descriptions, at most ``concurrency`` at a time."""
        semaphore = asyncio.Semaphore(self._settings.concurrency)

        async def embed_one(event: Event) -> EmbeddingResult:
            async with semaphore:
                return await self._embedder.embed(event.description)

        outcomes = await asyncio.gather(
            *(embed_one(event) for event in events),
            return_exceptions=True,
        )

        embeddings: dict[str, list[float]] = {}
        for event, outcome in zip(events, outcomes, strict=True):
            if isinstance(outcome, EmbeddingResult):
                embeddings[event.id] = outcome.embedding
            elif isinstance(outcome, Exception):
                logger.warning(
                    f"Embedding failed for event {event.id}: {outcome}",
                    extra={"event_id": event.id},
                )
                results[event.id] = BackfillItemResult(
                    event_id=event.id, success=False, error=str(outcome)
                )
            else:
                raise outcome
        return embeddings

    async def _write_chunk(
        self,
        chunk: dict[str, list[float]],
        results: dict[str, BackfillItemResult],
    ) -> dict[str, list[float]]:
        """Bulk-write one chunk, returning the embeddings that were stored."""
        try:
            outcome = await self._store.bulk_update_embeddings(chunk)
        except StoreError as e:
            logger.error(f"Bulk write failed for {len(chunk)} events: {e.message}")
            for event_id in chunk:
                results[event_id] = BackfillItemResult(
                    event_id=event_id, success=False, error=e.message
                )
            return {}

        for event_id, reason in outcome.failed.items():
            results[event_id] = BackfillItemResult(event_id=event_id, success=False, error=reason)
        for event_id in outcome.updated:
            results[event_id] = BackfillItemResult(event_id=event_id, success=True)

        return {event_id: chunk[event_id] for event_id in outcome.updated}

    async def _index_chunk(
        self,
        written: dict[str, list[float]],
        results: dict[str, BackfillItemResult],
    ) -> None:
        """Mirror stored embeddings into the vector index."""
        if not written:
            return

        records = [
            VectorRecord(event_id=event_id, vector=vector) for event_id, vector in written.items()
        ]
        try:
            await self._index.upsert(records)
        except IndexUnavailable as e:
            logger.warning(
                f"Stored {len(records)} embeddings but could not index them: {e.message}"
            )
            return

        for event_id in written:
            results[event_id].indexed = True
