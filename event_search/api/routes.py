"""API routes for event search operations."""

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from event_search.api.dependencies import get_backfill, get_search_pipeline
from event_search.backfill.models import BackfillItemResult, BackfillReport
from event_search.backfill.service import EmbeddingBackfill
from event_search.logging_config import get_logger
from event_search.search.models import SearchQuery, SearchResponse
from event_search.search.pipeline import EventSearchPipeline

logger = get_logger(__name__)


# Create router
router = APIRouter(prefix="/api/v1/events", tags=["Events"])


class SemanticSearchRequest(BaseModel):
    """Request body for pure semantic search."""

    query: str = Field(default="", description="Free-text query")
    limit: int = Field(default=10, ge=1, le=100, description="Number of events")


class SemanticSearchResponse(BaseModel):
    """Response from pure semantic search."""

    results: list[dict[str, Any]] = Field(description="Events, most similar first")


class BackfillRequest(BaseModel):
    """Request body for embedding backfill."""

    model_config = ConfigDict(populate_by_name=True)

    event_ids: list[str] = Field(
        default_factory=list,
        alias="eventsId",
        description="Events whose embeddings should be recomputed",
    )


class BackfillResponse(BaseModel):
    """Per-id backfill summary."""

    items: list[BackfillItemResult] = Field(description="Outcome per event")
    succeeded: list[str] = Field(description="Events updated")
    failed: list[str] = Field(description="Events that could not be updated")


class EmbedEventResponse(BaseModel):
    """Recomputed embedding of one event."""

    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(alias="eventId", description="Event identifier")
    model: str = Field(description="Embedding model used")
    dimensions: int = Field(description="Vector dimensions")
    embedding: list[float] = Field(description="Stored embedding")


@router.get("/filter", response_model=SearchResponse)
async def filter_events(
    request: Request,
    pipeline: EventSearchPipeline = Depends(get_search_pipeline),
) -> SearchResponse:
    """Filtered, ranked and paginated event search.

    Query parameters: keyword, location, category, eventType, startTime,
    endTime, priceMin, priceMax, sort, page, limit.
    """
    settings = pipeline.settings
    query = SearchQuery.from_params(
        dict(request.query_params),
        default_limit=settings.default_page_size,
        max_limit=settings.max_page_size,
    )
    return await pipeline.search(query)


@router.post("/search", response_model=SemanticSearchResponse)
async def semantic_search_endpoint(
    request: SemanticSearchRequest,
    pipeline: EventSearchPipeline = Depends(get_search_pipeline),
) -> SemanticSearchResponse:
    """Events most similar to a free-text query."""
    results = await pipeline.semantic_search(request.query, limit=request.limit)
    return SemanticSearchResponse(results=results)


@router.post("/embeddings/backfill", response_model=BackfillResponse)
async def backfill_endpoint(
    request: BackfillRequest,
    backfill: EmbeddingBackfill = Depends(get_backfill),
) -> BackfillResponse:
    """Recompute embeddings for a list of events."""
    report = await backfill.backfill(request.event_ids)
    if report.failed:
        logger.warning(
            "Backfill finished with failures",
            extra={"failed": report.failed},
        )
    return backfill_report_to_response(report)


@router.post("/{event_id}/embedding", response_model=EmbedEventResponse)
async def embed_event_endpoint(
    event_id: str,
    backfill: EmbeddingBackfill = Depends(get_backfill),
) -> EmbedEventResponse:
    """Recompute the embedding of one event."""
    result = await backfill.embed_event(event_id)
    return EmbedEventResponse(
        event_id=event_id,
        model=result.model,
        dimensions=result.dimensions,
        embedding=result.embedding,
    )


def backfill_report_to_response(report: BackfillReport) -> BackfillResponse:
    """Convert internal BackfillReport to API BackfillResponse."""
    return BackfillResponse(
        items=report.items,
        succeeded=report.succeeded,
        failed=report.failed,
    )
