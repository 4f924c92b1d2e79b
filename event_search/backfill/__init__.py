"""Embedding backfill module."""

from event_search.backfill.models import BackfillItemResult, BackfillReport
from event_search.backfill.service import EmbeddingBackfill

__all__ = [
    "BackfillItemResult",
    "BackfillReport",
    "EmbeddingBackfill",
]
