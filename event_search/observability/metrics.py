"""Prometheus metrics for the event search service.

Provides metrics instrumentation for:
- HTTP request latency and counts
- Search latency by ranking mode, fallbacks and result sizes
- Embedding and vector index latency
- Backfill item outcomes
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from event_search.logging_config import get_logger

logger = get_logger(__name__)

# HTTP Request Metrics
HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Search Metrics
SEARCH_DURATION = Histogram(
    "event_search_duration_seconds",
    "Event search duration in seconds",
    ["mode", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

SEARCH_TOTAL = Counter(
    "event_searches_total",
    "Total event searches",
    ["mode", "status"],
)

SEARCH_INDEX_FALLBACK_TOTAL = Counter(
    "event_search_index_fallback_total",
    "Searches ranked without the vector index",
)

SEARCH_RESULTS_TOTAL = Histogram(
    "event_search_results_total",
    "Filtered result set size per search",
    buckets=[0, 1, 5, 10, 25, 50, 100, 200, 500],
)

SEARCH_TOP_SCORE = Histogram(
    "event_search_top_score",
    "Top cosine similarity per search",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)

# Embedding Metrics
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding request duration in seconds",
    ["model", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

EMBEDDING_REQUEST_TOTAL = Counter(
    "embedding_requests_total",
    "Total embedding requests",
    ["model", "status"],
)

EMBEDDING_BATCH_SIZE = Histogram(
    "embedding_batch_size",
    "Embedding batch size",
    ["model"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500],
)

# Vector Index Metrics
INDEX_QUERY_DURATION = Histogram(
    "vector_index_query_duration_seconds",
    "Vector index nearest-neighbor query duration",
    ["status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)

# Backfill Metrics
BACKFILL_ITEMS_TOTAL = Counter(
    "embedding_backfill_items_total",
    "Events processed by embedding backfill",
    ["status"],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    def __init__(self, app: ASGIApp) -> None:
        """Initialize the middleware."""
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process request and collect metrics."""
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - start_time

        # Normalize endpoint for cardinality control
        endpoint = self._normalize_endpoint(request.url.path)

        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).observe(duration)

        HTTP_REQUEST_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        # Group health endpoints
        if path.startswith("/health"):
            return "/health"
        # Collapse per-event paths such as /api/v1/events/<id>/embedding
        if path.startswith("/api/v1/events/"):
            parts = path.split("/")
            if len(parts) == 6 and parts[5] == "embedding":
                return "/api/v1/events/{event_id}/embedding"
        # Keep other API versioned paths
        return path


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_search_request(
    mode: str,
    duration: float,
    total_results: int,
    top_score: float | None,
    success: bool = True,
) -> None:
    """Track search request metrics.

    Args:
        mode: Ranking mode ("vector", "fallback" or "semantic").
        duration: Request duration in seconds.
        total_results: Size of the filtered result set.
        top_score: Highest cosine similarity in the result set.
        success: Whether the search succeeded.
    """
    status = "success" if success else "error"

    SEARCH_DURATION.labels(mode=mode, status=status).observe(duration)
    SEARCH_TOTAL.labels(mode=mode, status=status).inc()

    if success:
        SEARCH_RESULTS_TOTAL.observe(total_results)
        if top_score is not None and top_score > 0:
            SEARCH_TOP_SCORE.observe(top_score)


def track_index_fallback() -> None:
    """Record a search that ran without the vector index."""
    SEARCH_INDEX_FALLBACK_TOTAL.inc()


def track_embedding_request(
    model: str,
    duration: float,
    batch_size: int,
    success: bool = True,
) -> None:
    """Track embedding request metrics.

    Args:
        model: Embedding model name.
        duration: Request duration in seconds.
        batch_size: Number of texts in the batch.
        success: Whether the request succeeded.
    """
    status = "success" if success else "error"

    EMBEDDING_REQUEST_DURATION.labels(model=model, status=status).observe(duration)
    EMBEDDING_REQUEST_TOTAL.labels(model=model, status=status).inc()
    EMBEDDING_BATCH_SIZE.labels(model=model).observe(batch_size)


def track_index_query(duration: float, success: bool = True) -> None:
    """Track a nearest-neighbor query against the vector index."""
    status = "success" if success else "error"
    INDEX_QUERY_DURATION.labels(status=status).observe(duration)


def track_backfill_items(succeeded: int, failed: int) -> None:
    """Track backfill item outcomes."""
    if succeeded:
        BACKFILL_ITEMS_TOTAL.labels(status="success").inc(succeeded)
    if failed:
        BACKFILL_ITEMS_TOTAL.labels(status="error").inc(failed)
