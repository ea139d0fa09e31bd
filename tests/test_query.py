"""
Tests for filtering, relevance search and the memoising query engine.

Run: pytest tests/ -v
"""

from __future__ import annotations

from typing import Any

from school_pipeline.models import (
    BoardingOption,
    Cost,
    County,
    FilterCriteria,
    Gender,
    Level,
    NumericRange,
    Ranking,
    SchoolColor,
    SchoolRecord,
    SchoolType,
)
from school_pipeline.query import QueryEngine, apply_filters, filter_summary, search


def _make_record(**overrides: Any) -> SchoolRecord:
    kwargs: dict[str, Any] = {
        "id": "1",
        "name": "Test School",
        "school_type": SchoolType.GRAMMAR,
        "gender": Gender.COED,
        "level": Level.SECONDARY,
        "address": "1 High Street, London",
        "postcode": "N1 1AA",
        "borough": "ISLINGTON",
        "county": County.LONDON,
        "cost": Cost(),
        "competitiveness": 3,
        "color": SchoolColor.COED_SECONDARY.value,
    }
    kwargs.update(overrides)
    return SchoolRecord(**kwargs)


def _sample_records() -> list[SchoolRecord]:
    return [
        _make_record(
            id="1",
            name="Queen Elizabeth's School",
            gender=Gender.BOYS,
            address="Queen's Road, Barnet, EN5 4DQ",
            postcode="EN5 4DQ",
            borough="BARNET",
            competitiveness=5,
            ranking=Ranking(position=11, source="11th nationally"),
        ),
        _make_record(
            id="2",
            name="Highgate School",
            school_type=SchoolType.PRIVATE,
            address="North Road, London N6 4AY",
            postcode="N6 4AY",
            borough="HARINGEY",
            cost=Cost(amount=30000, is_free=False),
            competitiveness=4,
            boarding_options=BoardingOption.DAY,
        ),
        _make_record(
            id="3",
            name="Tiffin Girls' School",
            gender=Gender.GIRLS,
            address="Richmond Road, Kingston upon Thames KT2 5PL",
            postcode="KT2 5PL",
            borough="KINGSTON",
            ranking=Ranking(position=50, source="Outstanding"),
            religious_affiliation="None",
        ),
        _make_record(
            id="4",
            name="Judd School",
            gender=Gender.BOYS,
            county=County.KENT,
            address="Brook Street, Tonbridge TN9 2PN",
            postcode="TN9 2PN",
            borough="TONBRIDGE",
            ranking=Ranking(position=40, source="40th nationally"),
        ),
    ]


def _ids(records) -> list[str]:
    return [r.id for r in records]


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ═══════════════════════════════════════════════════════════════════════
# FILTERING
# ═══════════════════════════════════════════════════════════════════════


class TestApplyFilters:
    def test_empty_criteria_returns_input_unchanged(self):
        records = _sample_records()
        assert apply_filters(records, FilterCriteria()) is records

    def test_empty_lists_count_as_unset(self):
        records = _sample_records()
        assert apply_filters(records, FilterCriteria(genders=[], counties=[])) is records

    def test_gender(self):
        result = apply_filters(_sample_records(), FilterCriteria(genders=[Gender.BOYS]))
        assert _ids(result) == ["1", "4"]

    def test_predicates_combine_with_and(self):
        criteria = FilterCriteria(genders=[Gender.BOYS], counties=[County.LONDON])
        assert _ids(apply_filters(_sample_records(), criteria)) == ["1"]

    def test_school_type(self):
        criteria = FilterCriteria(school_types=[SchoolType.PRIVATE])
        assert _ids(apply_filters(_sample_records(), criteria)) == ["2"]

    def test_borough(self):
        criteria = FilterCriteria(boroughs=["BARNET", "KINGSTON"])
        assert _ids(apply_filters(_sample_records(), criteria)) == ["1", "3"]

    def test_cost_range_is_inclusive(self):
        criteria = FilterCriteria(cost_range=NumericRange(min=10000, max=30000))
        assert _ids(apply_filters(_sample_records(), criteria)) == ["2"]

    def test_open_ended_cost_range(self):
        criteria = FilterCriteria(cost_range=NumericRange(max=0))
        assert _ids(apply_filters(_sample_records(), criteria)) == ["1", "3", "4"]

    def test_competitiveness_set(self):
        criteria = FilterCriteria(competitiveness=[4, 5])
        assert _ids(apply_filters(_sample_records(), criteria)) == ["1", "2"]

    def test_ranking_range_excludes_unranked(self):
        criteria = FilterCriteria(ranking_range=NumericRange(min=1, max=100))
        assert _ids(apply_filters(_sample_records(), criteria)) == ["1", "3", "4"]

    def test_placeholder_ranking_takes_part_in_range(self):
        criteria = FilterCriteria(ranking_range=NumericRange(min=1, max=45))
        assert _ids(apply_filters(_sample_records(), criteria)) == ["1", "4"]

    def test_boarding_requires_a_value(self):
        criteria = FilterCriteria(boarding_options=[BoardingOption.DAY, BoardingOption.BOTH])
        assert _ids(apply_filters(_sample_records(), criteria)) == ["2"]

    def test_religion_requires_a_value(self):
        criteria = FilterCriteria(religious_affiliations=["None"])
        assert _ids(apply_filters(_sample_records(), criteria)) == ["3"]


class TestFilterSummary:
    def test_empty(self):
        summary = filter_summary(FilterCriteria())
        assert summary.active_count == 0
        assert summary.description == []

    def test_counts_values_and_ranges(self):
        criteria = FilterCriteria(
            school_types=[SchoolType.GRAMMAR, SchoolType.PRIVATE],
            genders=[Gender.BOYS, Gender.GIRLS],
            levels=[Level.PRIMARY, Level.SECONDARY],
            cost_range=NumericRange(min=10000, max=30000),
            ranking_range=NumericRange(min=1, max=10),
        )
        summary = filter_summary(criteria)
        assert summary.active_count == 8
        assert summary.description == [
            "2 school type(s)",
            "Boys, Girls",
            "Primary & Secondary",
            "£10,000-£30,000/year",
            "Rank 1-10",
        ]

    def test_open_cost_range(self):
        summary = filter_summary(FilterCriteria(cost_range=NumericRange(min=20000)))
        assert summary.description == ["£20,000+/year"]

    def test_competitiveness(self):
        summary = filter_summary(FilterCriteria(competitiveness=[4, 5]))
        assert summary.active_count == 2
        assert summary.description == ["Competitiveness: 4, 5"]


# ═══════════════════════════════════════════════════════════════════════
# SEARCH
# ═══════════════════════════════════════════════════════════════════════


class TestSearch:
    def test_blank_query_returns_nothing(self):
        assert search(_sample_records(), "") == []
        assert search(_sample_records(), "   ") == []

    def test_no_match(self):
        assert search(_sample_records(), "zzzz") == []

    def test_name_word_match(self):
        results = search(_sample_records(), "judd")
        assert _ids(r.record for r in results) == ["4"]
        assert results[0].relevance_score == 100
        assert results[0].matched_fields == ["name"]

    def test_whole_word_beats_substring(self):
        records = [
            _make_record(id="sub", name="Kingsbury High", address="Bacon Lane, London"),
            _make_record(id="word", name="Kings Langley School", address="Love Lane, Herts"),
        ]
        results = search(records, "kings")
        assert _ids(r.record for r in results) == ["word", "sub"]
        assert results[0].relevance_score > results[1].relevance_score

    def test_scores_add_across_fields(self):
        results = search(_sample_records(), "barnet")
        assert _ids(r.record for r in results) == ["1"]
        # address word (50) + borough word (35)
        assert results[0].relevance_score == 85
        assert results[0].matched_fields == ["address", "borough"]

    def test_postcode_prefix(self):
        results = search(_sample_records(), "kt2")
        assert _ids(r.record for r in results) == ["3"]

    def test_case_insensitive(self):
        assert _ids(r.record for r in search(_sample_records(), "HIGHGATE")) == ["2"]

    def test_results_capped_at_fifty(self):
        records = [_make_record(id=str(i), name=f"Academy {i}") for i in range(80)]
        results = search(records, "academy")
        assert len(results) == 50

    def test_ties_keep_input_order(self):
        records = [_make_record(id=str(i), name=f"Academy {i}") for i in range(5)]
        assert _ids(r.record for r in search(records, "academy")) == ["0", "1", "2", "3", "4"]


# ═══════════════════════════════════════════════════════════════════════
# QUERY ENGINE
# ═══════════════════════════════════════════════════════════════════════


class TestQueryEngine:
    def test_filter_result_is_memoised(self):
        clock = FakeClock()
        engine = QueryEngine(clock=clock)
        records = _sample_records()
        criteria = FilterCriteria(genders=[Gender.BOYS])

        first = engine.filter(records, criteria)
        second = engine.filter(records, criteria)

        assert first is second
        assert engine.stats()["filter_entries"] == 1

    def test_filter_entry_expires(self):
        clock = FakeClock()
        engine = QueryEngine(filter_ttl=60, clock=clock)
        records = _sample_records()
        criteria = FilterCriteria(genders=[Gender.BOYS])

        first = engine.filter(records, criteria)
        clock.now += 61
        assert engine.filter(records, criteria) is not first

    def test_distinct_criteria_do_not_collide(self):
        engine = QueryEngine(clock=FakeClock())
        records = _sample_records()
        boys = engine.filter(records, FilterCriteria(genders=[Gender.BOYS]))
        girls = engine.filter(records, FilterCriteria(genders=[Gender.GIRLS]))
        assert _ids(boys) == ["1", "4"]
        assert _ids(girls) == ["3"]

    def test_search_is_memoised_per_normalised_query(self):
        engine = QueryEngine(clock=FakeClock())
        records = _sample_records()
        first = engine.search(records, "Judd")
        assert engine.search(records, "  judd ") is first

    def test_stale_until_ttl_then_refreshed(self):
        clock = FakeClock()
        engine = QueryEngine(search_ttl=300, clock=clock)
        records = _sample_records()
        engine.search(records, "judd")

        # Same size record set, different content: served stale within the TTL
        replaced = [_make_record(id=str(i), name="Other") for i in range(4)]
        assert _ids(r.record for r in engine.search(replaced, "judd")) == ["4"]

        clock.now += 300
        assert engine.search(replaced, "judd") == []

    def test_invalidate(self):
        engine = QueryEngine(clock=FakeClock())
        records = _sample_records()
        engine.search(records, "judd")
        engine.filter(records, FilterCriteria(genders=[Gender.BOYS]))

        engine.invalidate()

        stats = engine.stats()
        assert stats["filter_entries"] == 0
        assert stats["search_entries"] == 0
        assert stats["filter_ttl"] == 60.0
        assert stats["search_ttl"] == 300.0
