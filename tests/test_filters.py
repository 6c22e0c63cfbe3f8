"""
Filter predicates: in-memory matching, field scoping, and the per-listing builders
(including the inverted date window rejection).
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.core.errors import InputValidationError
from app.schemas.analytics import AnalyticsFilters
from app.services.filters import (
    MATCH_ALL,
    DateRange,
    FieldEquals,
    FilterPredicate,
    FlagEquals,
    aggregate_predicate,
    page_view_predicate,
    session_predicate,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


SESSION = SimpleNamespace(
    id="s1",
    country="USA",
    device_type="desktop",
    is_new_user=True,
    created_at=utc(2024, 1, 15, 10, 0),
)


class TestPredicates:
    def test_date_range_is_inclusive_on_both_ends(self):
        rng = DateRange("created_at", start=utc(2024, 1, 15, 10, 0), end=utc(2024, 1, 15, 10, 0))
        assert rng.matches(SESSION)

    def test_date_range_open_ended(self):
        assert DateRange("created_at", start=utc(2024, 1, 1)).matches(SESSION)
        assert not DateRange("created_at", end=utc(2024, 1, 1)).matches(SESSION)

    def test_date_range_treats_naive_values_as_utc(self):
        record = {"created_at": datetime(2024, 1, 15, 10, 0)}
        assert DateRange("created_at", start=utc(2024, 1, 15, 10, 0)).matches(record)

    def test_date_range_rejects_missing_value(self):
        assert not DateRange("created_at", start=utc(2024, 1, 1)).matches({"created_at": None})

    def test_field_equals(self):
        assert FieldEquals("country", "USA").matches(SESSION)
        assert not FieldEquals("country", "Canada").matches(SESSION)

    def test_flag_equals(self):
        assert FlagEquals("is_new_user", True).matches(SESSION)
        assert not FlagEquals("is_new_user", False).matches(SESSION)

    def test_dotted_fields_reach_related_records(self):
        page_view = SimpleNamespace(page_url="/home", session=SESSION)
        assert FieldEquals("session.country", "USA").matches(page_view)
        assert not FieldEquals("session.country", "UK").matches({"session": None})

    def test_predicates_are_anded(self):
        predicate = FilterPredicate((FieldEquals("country", "USA"), FlagEquals("is_new_user", False)))
        assert not predicate.matches(SESSION)

    def test_empty_predicate_matches_everything(self):
        assert MATCH_ALL.matches(SESSION)
        assert not MATCH_ALL

    def test_scoped_prefixes_every_field(self):
        predicate = FilterPredicate((FieldEquals("country", "USA"),)).scoped("session")
        assert predicate.fields() == {"session.country"}


class TestBuilders:
    def test_none_means_no_filtering(self):
        assert session_predicate(None) is MATCH_ALL
        assert page_view_predicate(None) is MATCH_ALL
        assert aggregate_predicate(None) is MATCH_ALL

    def test_session_predicate_uses_created_at(self):
        filters = AnalyticsFilters(
            start_date=utc(2024, 1, 15), end_date=utc(2024, 1, 16), country="USA", is_new_user=True
        )
        predicate = session_predicate(filters)
        assert predicate.fields() == {"created_at", "country", "is_new_user"}
        assert predicate.matches(SESSION)

    def test_page_view_predicate_scopes_session_dimensions(self):
        filters = AnalyticsFilters(
            start_date=utc(2024, 1, 15), country="USA", device_type="mobile", page_url="/home"
        )
        predicate = page_view_predicate(filters)
        assert predicate.fields() == {
            "entry_time",
            "page_url",
            "session.country",
            "session.device_type",
        }

    def test_aggregate_predicate_is_an_overlap_test(self):
        filters = AnalyticsFilters(start_date=utc(2024, 2, 1), end_date=utc(2024, 2, 28))
        predicate = aggregate_predicate(filters)

        spans_window = {"first_visit": utc(2024, 1, 1), "last_visit": utc(2024, 3, 1)}
        ended_before = {"first_visit": utc(2024, 1, 1), "last_visit": utc(2024, 1, 31)}
        started_after = {"first_visit": utc(2024, 3, 1), "last_visit": utc(2024, 3, 2)}

        assert predicate.matches(spans_window)
        assert not predicate.matches(ended_before)
        assert not predicate.matches(started_after)

    @pytest.mark.parametrize("builder", [session_predicate, page_view_predicate, aggregate_predicate])
    def test_inverted_window_is_rejected(self, builder):
        filters = AnalyticsFilters(start_date=utc(2024, 2, 1), end_date=utc(2024, 1, 1))
        with pytest.raises(InputValidationError) as exc_info:
            builder(filters)
        assert exc_info.value.field == "start_date"
