"""Tests for the filter engine."""

from collections.abc import Callable
from datetime import datetime

import pytest

from event_search.search.filters import (
    FilterEngine,
    contains,
    keyword_match_count,
    price_matches,
)
from event_search.search.models import Candidate, SearchQuery
from event_search.store.models import Event


class TestContains:
    """Tests for case-insensitive substring matching."""

    def test_case_insensitive(self) -> None:
        """Matching ignores case."""
        assert contains("Blue Note JAZZ Club", "jazz")

    def test_empty_needle_matches(self) -> None:
        """An empty predicate matches everything."""
        assert contains("", "")
        assert contains("anything", "")

    def test_no_match(self) -> None:
        """Absent substrings do not match."""
        assert not contains("Rock Arena", "jazz")


class TestKeywordMatchCount:
    """Tests for per-field keyword counting."""

    def test_counts_matching_fields(self, make_event: Callable[..., Event]) -> None:
        """Each of title, address, artist and description counts once."""
        event = make_event(
            1,
            title="Jazz Night",
            artistName="Jazz Trio",
            description="An evening of jazz and blues",
            location={"fullAddress": "1 Main St"},
        )
        assert keyword_match_count(event, "JAZZ") == 3

    def test_empty_keyword_counts_zero(self, make_event: Callable[..., Event]) -> None:
        """No keyword means no matches."""
        assert keyword_match_count(make_event(1), "") == 0


class TestPriceMatches:
    """Tests for the price range predicate."""

    @pytest.mark.parametrize(
        ("price_min", "price_max", "expected"),
        [
            (20, 30, True),
            (5, 15, True),
            (45, 60, True),
            (100, 200, False),
            (0, 5, False),
            (None, None, True),
            (None, 12, True),
            (60, None, False),
        ],
    )
    def test_range_overlap(
        self,
        price_min: float | None,
        price_max: float | None,
        expected: bool,
    ) -> None:
        """A 10-50 event overlaps, spans or misses the query bounds."""
        assert price_matches(10, 50, price_min, price_max) is expected

    def test_no_tickets_without_bounds(self) -> None:
        """Events without tickets pass when no price bound is given."""
        assert price_matches(None, None, None, None)

    def test_no_tickets_with_bounds(self) -> None:
        """Events without tickets fail any price bound."""
        assert not price_matches(None, None, 0, 100)


class TestFilterEngine:
    """Tests for FilterEngine predicates."""

    def test_empty_query_matches_everything(self, make_event: Callable[..., Event]) -> None:
        """A query with no active predicate keeps every event."""
        engine = FilterEngine()
        assert engine.matches(make_event(1), SearchQuery())

    def test_bare_start_date_matches_same_day(self, make_event: Callable[..., Event]) -> None:
        """A bare date selects events starting that day."""
        event = make_event(
            1,
            startTime=datetime(2024, 6, 1, 10, 0),
            endTime=datetime(2024, 6, 1, 18, 0),
        )
        query = SearchQuery(start_time="2024-06-01")

        assert FilterEngine().matches(event, query)

    def test_bare_start_date_excludes_next_day(self, make_event: Callable[..., Event]) -> None:
        """The implied window ends before the following midnight."""
        event = make_event(
            1,
            startTime=datetime(2024, 6, 2, 0, 0),
            endTime=datetime(2024, 6, 2, 3, 0),
        )
        query = SearchQuery(start_time="2024-06-01")

        assert not FilterEngine().matches(event, query)

    def test_event_ending_in_window(self, make_event: Callable[..., Event]) -> None:
        """Events that started earlier but end inside the window match."""
        event = make_event(
            1,
            startTime=datetime(2024, 5, 30, 10, 0),
            endTime=datetime(2024, 6, 1, 2, 0),
        )
        query = SearchQuery(start_time="2024-06-01")

        assert FilterEngine().matches(event, query)

    def test_event_spanning_window(self, make_event: Callable[..., Event]) -> None:
        """Multi-day events containing the window match."""
        event = make_event(
            1,
            startTime=datetime(2024, 5, 1),
            endTime=datetime(2024, 7, 1),
        )
        query = SearchQuery(start_time="2024-06-01", end_time="2024-06-03")

        assert FilterEngine().matches(event, query)

    def test_event_outside_explicit_window(self, make_event: Callable[..., Event]) -> None:
        """Events entirely before the window are excluded."""
        event = make_event(
            1,
            startTime=datetime(2024, 5, 1, 10, 0),
            endTime=datetime(2024, 5, 1, 12, 0),
        )
        query = SearchQuery(start_time="2024-06-01", end_time="2024-06-03")

        assert not FilterEngine().matches(event, query)

    def test_text_predicates_are_conjunctive(self, make_event: Callable[..., Event]) -> None:
        """Every text predicate must hold."""
        event = make_event(
            1,
            category="Music",
            eventType="Festival",
            location={"fullAddress": "12 Harbour Rd, Portsmouth"},
        )
        engine = FilterEngine()

        assert engine.matches(event, SearchQuery(category="music", location="portsmouth"))
        assert not engine.matches(event, SearchQuery(category="music", event_type="concert"))

    def test_keyword_required(self, make_event: Callable[..., Event]) -> None:
        """Events with no field containing the keyword are dropped."""
        event = make_event(1, title="Rock Night", description="Loud guitars")
        assert not FilterEngine().matches(event, SearchQuery(keyword="jazz"))

    def test_keyword_optional(self, make_event: Callable[..., Event]) -> None:
        """With keyword matching disabled the keyword only affects scores."""
        event = make_event(1, title="Rock Night", description="Loud guitars")
        engine = FilterEngine(require_keyword_match=False)

        assert engine.matches(event, SearchQuery(keyword="jazz"))

    def test_apply_records_match_counts(self, make_event: Callable[..., Event]) -> None:
        """apply keeps matching candidates and stores their match counts."""
        jazz = Candidate(event=make_event(1, title="Jazz", description="jazz"))
        rock = Candidate(event=make_event(2, title="Rock", description="rock"))

        kept = FilterEngine().apply([jazz, rock], SearchQuery(keyword="jazz"))

        assert kept == [jazz]
        assert jazz.match_count == 2

    def test_store_filter_empty(self) -> None:
        """No text predicate yields an empty match document."""
        assert FilterEngine().store_filter(SearchQuery(price_min=5)) == {}

    def test_store_filter_escapes_regex(self) -> None:
        """User text is matched literally and case-insensitively."""
        match = FilterEngine().store_filter(SearchQuery(keyword="c++", category="Music"))

        keyword, category = match["$and"]
        assert keyword["$or"][0] == {"title": {"$regex": r"c\+\+", "$options": "i"}}
        assert len(keyword["$or"]) == 4
        assert category == {"category": {"$regex": "Music", "$options": "i"}}

    def test_store_filter_without_keyword_requirement(self) -> None:
        """An optional keyword is not pushed down to the store."""
        engine = FilterEngine(require_keyword_match=False)
        assert engine.store_filter(SearchQuery(keyword="jazz")) == {}
