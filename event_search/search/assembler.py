"""Sort overrides and pagination of ranked results."""

from collections.abc import Callable
from typing import Any

from event_search.search.models import Candidate, Pagination, SearchResponse, SortOrder


def _reorder(
    candidates: list[Candidate],
    key: Callable[[Candidate], Any],
    present: Callable[[Candidate], bool],
    descending: bool,
) -> list[Candidate]:
    """Stable sort by *key*; candidates lacking the sort field go last."""
    with_value = [c for c in candidates if present(c)]
    without_value = [c for c in candidates if not present(c)]
    with_value.sort(key=key, reverse=descending)
    return with_value + without_value


def _by_time(candidate: Candidate) -> tuple[Any, Any]:
    event = candidate.event
    return (event.start_time, event.end_time or event.start_time)


def _by_price(candidate: Candidate) -> tuple[float, float]:
    event = candidate.event
    low = event.min_price if event.min_price is not None else event.max_price
    high = event.max_price if event.max_price is not None else event.min_price
    return (low, high)  # type: ignore[return-value]


def _has_time(candidate: Candidate) -> bool:
    return candidate.event.start_time is not None


def _has_price(candidate: Candidate) -> bool:
    return candidate.event.min_price is not None or candidate.event.max_price is not None


class ResultAssembler:
    """Turns a ranked candidate list into one response page."""

    def order(self, candidates: list[Candidate], sort: SortOrder) -> list[Candidate]:
        """Apply a user-selected ordering over the relevance order.

        Relevance order is kept among equal sort keys.
        """
        if sort == SortOrder.SOONEST:
            return _reorder(candidates, _by_time, _has_time, descending=False)
        if sort == SortOrder.LATEST:
            return _reorder(candidates, _by_time, _has_time, descending=True)
        if sort == SortOrder.PRICE_LOW_TO_HIGH:
            return _reorder(candidates, _by_price, _has_price, descending=False)
        if sort == SortOrder.PRICE_HIGH_TO_LOW:
            return _reorder(candidates, _by_price, _has_price, descending=True)
        return list(candidates)

    def assemble(
        self,
        candidates: list[Candidate],
        page: int,
        limit: int,
        sort: SortOrder = SortOrder.RELEVANCE,
        degraded: bool = False,
    ) -> SearchResponse:
        """Order and paginate *candidates*.

        Args:
            candidates: The full filtered set in relevance order.
            page: 1-based page number.
            limit: Page size.
            sort: Optional ordering override.
            degraded: Whether ranking ran without the vector index.

        Returns:
            The requested page with metadata for the whole set.
        """
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be >= 1")

        ordered = self.order(candidates, sort)
        skip = (page - 1) * limit
        page_items = ordered[skip : skip + limit]

        return SearchResponse(
            items=[candidate.to_ranked() for candidate in page_items],
            pagination=Pagination.from_total(len(ordered), page, limit),
            degraded=degraded,
        )
