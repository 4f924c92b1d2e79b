"""Search data models."""

import math
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from event_search.exceptions import InvalidQuery
from event_search.store.models import Event
from event_search.utils.datetime_utils import parse_datetime, start_of_day

# Dropdown labels the web client sends when no filter is selected.
ALL_CATEGORIES = "All event categories"
ALL_EVENT_TYPES = "All event types"


class SortOrder(str, Enum):
    """User-selectable result ordering."""

    RELEVANCE = "Relevance"
    SOONEST = "Soonest"
    LATEST = "Latest"
    PRICE_LOW_TO_HIGH = "Price low to high"
    PRICE_HIGH_TO_LOW = "Price high to low"


class DateWindow(BaseModel):
    """Query time window used by the date predicate.

    Attributes:
        start: Window start (inclusive).
        end: Window end.
        end_inclusive: Whether ``end`` itself is inside the window.
    """

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    end_inclusive: bool = True

    def contains(self, moment: datetime) -> bool:
        """Whether *moment* falls inside the window."""
        if moment < self.start:
            return False
        return moment <= self.end if self.end_inclusive else moment < self.end

    def overlaps(self, start: datetime | None, end: datetime | None) -> bool:
        """Whether an event running from *start* to *end* overlaps the window.

        Matches when the event starts inside the window, ends inside it, or
        spans the whole window. An event with no end is treated as
        instantaneous.
        """
        if start is None:
            return False
        end = end or start
        if self.contains(start) or self.contains(end):
            return True
        return start <= self.start and end >= self.end


class SearchQuery(BaseModel):
    """A validated search request.

    Empty text filters match everything. A start time without an end
    time selects the whole day containing it.
    """

    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    keyword: str = ""
    location: str = ""
    category: str = ""
    event_type: str = Field(default="", alias="eventType")
    start_time: datetime | None = Field(default=None, alias="startTime")
    end_time: datetime | None = Field(default=None, alias="endTime")
    price_min: float | None = Field(default=None, alias="priceMin")
    price_max: float | None = Field(default=None, alias="priceMax")
    sort: SortOrder = SortOrder.RELEVANCE
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=8, ge=1)

    @field_validator("keyword", "location", "category", "event_type", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            value = value.strip()
            if value in (ALL_CATEGORIES, ALL_EVENT_TYPES):
                return ""
        return value

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_time(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if not isinstance(value, str | date):
            raise ValueError("expected an ISO-8601 date or datetime")
        return parse_datetime(value)

    @field_validator("price_min", "price_max", mode="before")
    @classmethod
    def _blank_price(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("sort", mode="before")
    @classmethod
    def _parse_sort(cls, value: Any) -> Any:
        if value is None or value == "":
            return SortOrder.RELEVANCE
        if isinstance(value, str):
            for order in SortOrder:
                if order.value.casefold() == value.strip().casefold():
                    return order
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> "SearchQuery":
        if (
            self.price_min is not None
            and self.price_max is not None
            and self.price_min > self.price_max
        ):
            raise ValueError("priceMin must not exceed priceMax")
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.end_time < self.start_time
        ):
            raise ValueError("endTime must not be before startTime")
        return self

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        default_limit: int = 8,
        max_limit: int = 100,
    ) -> "SearchQuery":
        """Build a query from raw request parameters.

        Blank values are treated as absent.

        Raises:
            InvalidQuery: If any parameter is malformed.
        """
        cleaned = {
            key: value
            for key, value in params.items()
            if value is not None and not (isinstance(value, str) and not value.strip())
        }
        cleaned.setdefault("limit", default_limit)

        try:
            query = cls.model_validate(cleaned)
        except ValidationError as e:
            raise InvalidQuery(
                "Invalid search parameters",
                details={
                    "errors": [
                        {
                            "field": ".".join(str(part) for part in err["loc"]) or "query",
                            "message": err["msg"],
                        }
                        for err in e.errors()
                    ]
                },
            ) from e

        if query.limit > max_limit:
            raise InvalidQuery(
                f"limit must not exceed {max_limit}",
                details={"limit": query.limit},
            )
        return query

    @property
    def date_window(self) -> DateWindow | None:
        """The window for the date predicate, or None when no start is given."""
        if self.start_time is None:
            return None
        if self.end_time is None:
            day = start_of_day(self.start_time)
            return DateWindow(start=day, end=day + timedelta(days=1), end_inclusive=False)
        return DateWindow(start=self.start_time, end=self.end_time)


class Candidate(BaseModel):
    """An event under consideration within one search execution.

    Attributes:
        event: The event document with its price aggregate.
        index_score: Similarity reported by the vector index, if any.
        cosine_similarity: Exact cosine similarity to the query vector.
        match_count: Number of text fields containing the keyword.
        overall_relevance: Combined ranking score.
    """

    event: Event
    index_score: float | None = None
    cosine_similarity: float = 0.0
    match_count: int = 0
    overall_relevance: float = 0.0

    def to_ranked(self) -> dict[str, Any]:
        """Serialise as a ranked event for responses."""
        document = self.event.to_document()
        document["cosineSimilarity"] = self.cosine_similarity
        document["matchCount"] = self.match_count
        document["overallRelevance"] = self.overall_relevance
        return document


class Pagination(BaseModel):
    """Pagination metadata for the full filtered result set."""

    model_config = ConfigDict(populate_by_name=True)

    total: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total_pages: int = Field(alias="totalPages", ge=0)

    @classmethod
    def from_total(cls, total: int, page: int, limit: int) -> "Pagination":
        """Build metadata for *total* results split into pages of *limit*."""
        return cls(total=total, page=page, limit=limit, total_pages=math.ceil(total / limit))


class SearchResponse(BaseModel):
    """A page of ranked events.

    Attributes:
        items: Ranked events on the requested page.
        pagination: Metadata describing the whole result set.
        degraded: True when ranking ran without the vector index.
    """

    items: list[dict[str, Any]] = Field(default_factory=list)
    pagination: Pagination
    degraded: bool = False
