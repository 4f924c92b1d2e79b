"""Tests for embedding backfill."""

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from event_search.backfill.models import BackfillItemResult, BackfillReport
from event_search.backfill.service import EmbeddingBackfill, chunked
from event_search.config import BackfillSettings
from event_search.exceptions import EventNotFound, PartialBackfillFailure, StoreError
from event_search.store.models import Event

MISSING_ID = "0" * 23 + "f"


def _backfill(embedder, event_store, vector_index, **settings: int) -> EmbeddingBackfill:
    return EmbeddingBackfill(
        embedding_provider=embedder,
        event_store=event_store,
        vector_index=vector_index,
        settings=BackfillSettings(**settings),
    )


@pytest.fixture
def stored(make_event: Callable[..., Event], event_store) -> list[Event]:
    """Five events in the store without embeddings."""
    events = [make_event(i, description=f"description number {i}") for i in range(1, 6)]
    for event in events:
        event_store.add(event)
    return events


class TestChunked:
    """Tests for the chunking helper."""

    def test_chunks(self) -> None:
        """Items are split into consecutive slices."""
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_empty(self) -> None:
        """No items yields no chunks."""
        assert list(chunked([], 3)) == []


class TestBackfillReport:
    """Tests for the backfill report model."""

    def test_succeeded_and_failed(self) -> None:
        """Ids are partitioned by outcome."""
        report = BackfillReport(
            items=[
                BackfillItemResult(event_id="a", success=True, indexed=True),
                BackfillItemResult(event_id="b", success=False, error="boom"),
            ]
        )
        assert report.succeeded == ["a"]
        assert report.failed == ["b"]
        assert report.failures()[0].error == "boom"

    def test_raise_for_failures(self) -> None:
        """A report with failures raises PartialBackfillFailure."""
        report = BackfillReport(items=[BackfillItemResult(event_id="b", success=False)])
        with pytest.raises(PartialBackfillFailure):
            report.raise_for_failures()

    def test_no_failures_does_not_raise(self) -> None:
        """A clean report does not raise."""
        BackfillReport(items=[BackfillItemResult(event_id="a", success=True)]).raise_for_failures()

    def test_serialises_event_id_alias(self) -> None:
        """Items use the client's field name."""
        item = BackfillItemResult(event_id="a", success=True)
        assert item.model_dump(by_alias=True)["eventId"] == "a"


class TestEmbeddingBackfill:
    """Tests for EmbeddingBackfill.backfill."""

    @pytest.mark.asyncio
    async def test_missing_id_does_not_abort_batch(
        self, stored, embedder, event_store, vector_index
    ) -> None:
        """Valid ids succeed while a missing id fails on its own."""
        backfill = _backfill(embedder, event_store, vector_index)
        ids = [stored[0].id, MISSING_ID, stored[1].id]

        report = await backfill.backfill(ids)

        assert [item.event_id for item in report.items] == ids
        assert report.succeeded == [stored[0].id, stored[1].id]
        assert report.failed == [MISSING_ID]
        assert report.items[1].error == "Event not found"

    @pytest.mark.asyncio
    async def test_stores_description_embedding(
        self, stored, embedder, event_store, vector_index
    ) -> None:
        """The description, not the id, is embedded and stored and indexed."""
        backfill = _backfill(embedder, event_store, vector_index)

        report = await backfill.backfill([stored[0].id])

        expected = embedder.vector(stored[0].description)
        assert embedder.calls == [stored[0].description]
        assert event_store.events[stored[0].id].embedding == expected
        assert vector_index.vectors[stored[0].id] == expected
        assert report.items[0].indexed is True

    @pytest.mark.asyncio
    async def test_writes_in_chunks(self, stored, embedder, event_store, vector_index) -> None:
        """Bulk writes are issued per configured batch size."""
        backfill = _backfill(embedder, event_store, vector_index, batch_size=2)

        report = await backfill.backfill([event.id for event in stored])

        assert [len(call) for call in event_store.bulk_calls] == [2, 2, 1]
        assert len(report.succeeded) == 5

    @pytest.mark.asyncio
    async def test_duplicates_processed_once(
        self, stored, embedder, event_store, vector_index
    ) -> None:
        """Repeated ids are embedded and reported once."""
        backfill = _backfill(embedder, event_store, vector_index)

        report = await backfill.backfill([stored[0].id, stored[0].id])

        assert len(report.items) == 1
        assert len(embedder.calls) == 1

    @pytest.mark.asyncio
    async def test_uppercase_ids_match_stored_events(
        self, make_event: Callable[..., Event], embedder, event_store, vector_index
    ) -> None:
        """ObjectId strings are matched regardless of hex case."""
        event = make_event(0xABC, description="late night jazz")
        event_store.add(event)
        backfill = _backfill(embedder, event_store, vector_index)

        report = await backfill.backfill([event.id.upper(), event.id])

        assert report.succeeded == [event.id]
        assert report.failed == []
        assert event.id in vector_index.vectors

    @pytest.mark.asyncio
    async def test_empty_request(self, embedder, event_store, vector_index) -> None:
        """No ids gives an empty report."""
        report = await _backfill(embedder, event_store, vector_index).backfill([])
        assert report.items == []

    @pytest.mark.asyncio
    async def test_per_item_write_failure(
        self, stored, embedder, event_store, vector_index
    ) -> None:
        """A rejected write fails only its own event."""
        event_store.failing_writes.add(stored[1].id)
        backfill = _backfill(embedder, event_store, vector_index)

        report = await backfill.backfill([event.id for event in stored[:3]])

        assert report.failed == [stored[1].id]
        assert report.items[1].error == "write rejected"
        assert stored[1].id not in vector_index.vectors
        assert len(report.succeeded) == 2

    @pytest.mark.asyncio
    async def test_embedding_failure_isolated(
        self, stored, embedder, event_store, vector_index
    ) -> None:
        """An embedding error fails its event without aborting siblings."""
        embedder.failing_texts.add(stored[0].description)
        backfill = _backfill(embedder, event_store, vector_index)

        report = await backfill.backfill([stored[0].id, stored[1].id])

        assert report.failed == [stored[0].id]
        assert "unavailable" in report.items[0].error
        assert report.succeeded == [stored[1].id]

    @pytest.mark.asyncio
    async def test_chunk_store_error(self, stored, embedder, event_store, vector_index) -> None:
        """A failed bulk call fails every event in its chunk only."""
        original = event_store.bulk_update_embeddings
        calls = 0

        async def fail_first(embeddings: dict[str, list[float]]):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise StoreError("connection reset")
            return await original(embeddings)

        event_store.bulk_update_embeddings = AsyncMock(side_effect=fail_first)
        backfill = _backfill(embedder, event_store, vector_index, batch_size=2)

        report = await backfill.backfill([event.id for event in stored[:3]])

        assert report.failed == [stored[0].id, stored[1].id]
        assert report.items[0].error == "connection reset"

    @pytest.mark.asyncio
    async def test_index_failure_keeps_stored_embeddings(
        self, stored, embedder, event_store, vector_index
    ) -> None:
        """Index outages leave items successful but unindexed."""
        vector_index.unavailable = True
        backfill = _backfill(embedder, event_store, vector_index)

        report = await backfill.backfill([stored[0].id])

        assert report.succeeded == [stored[0].id]
        assert report.items[0].indexed is False
        assert event_store.events[stored[0].id].embedding is not None

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, stored, embedder, event_store, vector_index) -> None:
        """No more than ``concurrency`` embeddings run at once."""
        active = 0
        peak = 0
        original = embedder.embed

        async def slow_embed(text: str):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await original(text)

        embedder.embed = slow_embed
        backfill = _backfill(embedder, event_store, vector_index, concurrency=2)

        report = await backfill.backfill([event.id for event in stored])

        assert peak == 2
        assert len(report.succeeded) == 5


class TestEmbedEvent:
    """Tests for single-event embedding."""

    @pytest.mark.asyncio
    async def test_embeds_and_stores(self, stored, embedder, event_store, vector_index) -> None:
        """The event's description embedding is returned, stored and indexed."""
        backfill = _backfill(embedder, event_store, vector_index)

        result = await backfill.embed_event(stored[0].id)

        assert result.text == stored[0].description
        assert event_store.events[stored[0].id].embedding == result.embedding
        assert vector_index.vectors[stored[0].id] == result.embedding

    @pytest.mark.asyncio
    async def test_missing_event(self, embedder, event_store, vector_index) -> None:
        """Unknown events raise EventNotFound."""
        backfill = _backfill(embedder, event_store, vector_index)

        with pytest.raises(EventNotFound):
            await backfill.embed_event(MISSING_ID)

    @pytest.mark.asyncio
    async def test_write_rejected(self, stored, embedder, event_store, vector_index) -> None:
        """A rejected write raises StoreError."""
        event_store.failing_writes.add(stored[0].id)
        backfill = _backfill(embedder, event_store, vector_index)

        with pytest.raises(StoreError, match="write rejected"):
            await backfill.embed_event(stored[0].id)

    @pytest.mark.asyncio
    async def test_index_outage_tolerated(
        self, stored, embedder, event_store, vector_index
    ) -> None:
        """The stored embedding is returned even if indexing fails."""
        vector_index.unavailable = True
        backfill = _backfill(embedder, event_store, vector_index)

        result = await backfill.embed_event(stored[0].id)

        assert event_store.events[stored[0].id].embedding == result.embedding
