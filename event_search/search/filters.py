"""Structured predicates narrowing the candidate set."""

import math
import re
from collections.abc import Iterable
from typing import Any

from event_search.search.models import Candidate, SearchQuery
from event_search.store.models import Event


def contains(text: str, needle: str) -> bool:
    """Case-insensitive substring test; an empty needle matches everything."""
    if not needle:
        return True
    return needle.casefold() in (text or "").casefold()


def keyword_fields(event: Event) -> tuple[str, str, str, str]:
    """The four fields a keyword is matched against."""
    return (event.title, event.full_address, event.artist_name, event.description)


def keyword_match_count(event: Event, keyword: str) -> int:
    """Number of keyword fields containing *keyword*; 0 for an empty keyword."""
    if not keyword:
        return 0
    return sum(1 for field in keyword_fields(event) if contains(field, keyword))


def price_matches(
    min_price: float | None,
    max_price: float | None,
    price_min: float | None,
    price_max: float | None,
) -> bool:
    """Whether an event's ticket price range satisfies the query bounds.

    Passes when either end of the event's range falls within the bounds, or
    when the range spans the bounds entirely. Missing bounds are open. An
    event without ticket prices passes only when no bound is given.
    """
    if price_min is None and price_max is None:
        return True
    if min_price is None and max_price is None:
        return False

    low = -math.inf if price_min is None else price_min
    high = math.inf if price_max is None else price_max
    event_low = max_price if min_price is None else min_price
    event_high = min_price if max_price is None else max_price

    if low <= event_low <= high or low <= event_high <= high:
        return True
    return event_low <= low and event_high >= high


def _regex(value: str) -> dict[str, str]:
    return {"$regex": re.escape(value), "$options": "i"}


class FilterEngine:
    """Applies the query's predicates to candidates.

    All predicates are conjunctive. Text predicates are case-insensitive
    substring matches and empty values disable them.
    """

    def __init__(self, require_keyword_match: bool = True) -> None:
        """Initialize the filter engine.

        Args:
            require_keyword_match: Drop candidates with no keyword field
                match. When False the keyword only feeds the match count.
        """
        self._require_keyword_match = require_keyword_match

    def matches(self, event: Event, query: SearchQuery, match_count: int | None = None) -> bool:
        """Whether *event* satisfies every active predicate of *query*."""
        if self._require_keyword_match and query.keyword:
            if match_count is None:
                match_count = keyword_match_count(event, query.keyword)
            if match_count == 0:
                return False

        if not contains(event.full_address, query.location):
            return False
        if not contains(event.category, query.category):
            return False
        if not contains(event.event_type, query.event_type):
            return False

        if not price_matches(event.min_price, event.max_price, query.price_min, query.price_max):
            return False

        window = query.date_window
        if window is not None and not window.overlaps(event.start_time, event.end_time):
            return False

        return True

    def apply(self, candidates: Iterable[Candidate], query: SearchQuery) -> list[Candidate]:
        """Keep matching candidates, recording each one's keyword match count."""
        kept: list[Candidate] = []
        for candidate in candidates:
            count = keyword_match_count(candidate.event, query.keyword)
            if self.matches(candidate.event, query, match_count=count):
                candidate.match_count = count
                kept.append(candidate)
        return kept

    def store_filter(self, query: SearchQuery) -> dict[str, Any]:
        """Render the text predicates as a MongoDB match document.

        Used to narrow store scans; price and date predicates depend on
        per-query aggregates and are left to :meth:`apply`.
        """
        conditions: list[dict[str, Any]] = []

        if query.keyword and self._require_keyword_match:
            keyword = _regex(query.keyword)
            conditions.append(
                {
                    "$or": [
                        {"title": keyword},
                        {"location.fullAddress": keyword},
                        {"artistName": keyword},
                        {"description": keyword},
                    ]
                }
            )
        if query.location:
            conditions.append({"location.fullAddress": _regex(query.location)})
        if query.event_type:
            conditions.append({"eventType": _regex(query.event_type)})
        if query.category:
            conditions.append({"category": _regex(query.category)})

        return {"$and": conditions} if conditions else {}
