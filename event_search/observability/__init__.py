"""Observability module for metrics and monitoring."""

from event_search.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    track_backfill_items,
    track_embedding_request,
    track_index_fallback,
    track_index_query,
    track_search_request,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "track_backfill_items",
    "track_embedding_request",
    "track_index_fallback",
    "track_index_query",
    "track_search_request",
]
