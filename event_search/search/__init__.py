"""Event search ranking module."""

from event_search.search.assembler import ResultAssembler
from event_search.search.filters import FilterEngine, keyword_match_count, price_matches
from event_search.search.models import (
    Candidate,
    DateWindow,
    Pagination,
    SearchQuery,
    SearchResponse,
    SortOrder,
)
from event_search.search.pipeline import EventSearchPipeline
from event_search.search.scoring import RelevanceScorer, cosine_similarity

__all__ = [
    "Candidate",
    "DateWindow",
    "EventSearchPipeline",
    "FilterEngine",
    "Pagination",
    "RelevanceScorer",
    "ResultAssembler",
    "SearchQuery",
    "SearchResponse",
    "SortOrder",
    "cosine_similarity",
    "keyword_match_count",
    "price_matches",
]
