"""
Filtering and relevance search over validated school records.

apply_filters() and search() are pure functions. QueryEngine wraps them with
TTL memo caches (60s for filters, 300s for search by default) keyed on the
record count plus the serialised criteria or query.

Cache invalidation is purely time based: after the record set changes,
results may stay stale for up to the TTL unless the caller invokes
QueryEngine.invalidate().
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Sequence
from typing import Union

from .cache import TTLCache
from .models import FilterCriteria, FilterSummary, SchoolRecord, SearchResult

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 50
DEFAULT_FILTER_TTL = 60.0
DEFAULT_SEARCH_TTL = 300.0


# ─── Filtering ───────────────────────────────────────────────────────


def _matches(record: SchoolRecord, criteria: FilterCriteria) -> bool:
    if criteria.school_types and record.school_type not in criteria.school_types:
        return False
    if criteria.genders and record.gender not in criteria.genders:
        return False
    if criteria.levels and record.level not in criteria.levels:
        return False
    if criteria.counties and record.county not in criteria.counties:
        return False
    if criteria.boroughs and record.borough not in criteria.boroughs:
        return False
    if criteria.cost_range is not None and not criteria.cost_range.contains(record.cost.amount):
        return False
    if criteria.competitiveness and record.competitiveness not in criteria.competitiveness:
        return False

    # An active ranking range requires a ranking: unranked schools never match
    if criteria.ranking_range is not None:
        if record.ranking is None or not criteria.ranking_range.contains(record.ranking.position):
            return False

    if criteria.boarding_options:
        if record.boarding_options is None or record.boarding_options not in criteria.boarding_options:
            return False
    if criteria.religious_affiliations:
        if (
            record.religious_affiliation is None
            or record.religious_affiliation not in criteria.religious_affiliations
        ):
            return False

    return True


def apply_filters(
    records: Sequence[SchoolRecord], criteria: FilterCriteria
) -> Sequence[SchoolRecord]:
    """Keep the records satisfying every active predicate.

    Empty criteria return the input sequence itself, untouched.
    """
    if criteria.is_empty():
        return records
    return [record for record in records if _matches(record, criteria)]


def _format_number(value: float) -> str:
    return f"{int(value):,}" if float(value).is_integer() else f"{value:,}"


def filter_summary(criteria: FilterCriteria) -> FilterSummary:
    """Count active filter values and describe them for display.

    Set predicates count one per selected value; ranges count once.
    """
    summary = FilterSummary()

    if criteria.school_types:
        summary.active_count += len(criteria.school_types)
        summary.description.append(f"{len(criteria.school_types)} school type(s)")

    if criteria.genders:
        summary.active_count += len(criteria.genders)
        summary.description.append(", ".join(g.value for g in criteria.genders))

    if criteria.levels:
        summary.active_count += len(criteria.levels)
        summary.description.append(" & ".join(level.value for level in criteria.levels))

    if criteria.counties:
        summary.active_count += len(criteria.counties)
        summary.description.append(", ".join(c.value for c in criteria.counties))

    if criteria.boroughs:
        summary.active_count += len(criteria.boroughs)
        summary.description.append(", ".join(criteria.boroughs))

    if criteria.cost_range is not None:
        summary.active_count += 1
        low = _format_number(criteria.cost_range.min or 0)
        if criteria.cost_range.max is not None:
            summary.description.append(f"£{low}-£{_format_number(criteria.cost_range.max)}/year")
        else:
            summary.description.append(f"£{low}+/year")

    if criteria.competitiveness:
        summary.active_count += len(criteria.competitiveness)
        levels = ", ".join(str(c) for c in criteria.competitiveness)
        summary.description.append(f"Competitiveness: {levels}")

    if criteria.ranking_range is not None:
        summary.active_count += 1
        low = _format_number(criteria.ranking_range.min or 1)
        if criteria.ranking_range.max is not None:
            summary.description.append(f"Rank {low}-{_format_number(criteria.ranking_range.max)}")
        else:
            summary.description.append(f"Rank {low}+")

    if criteria.boarding_options:
        summary.active_count += len(criteria.boarding_options)
        summary.description.append(", ".join(b.value for b in criteria.boarding_options))

    if criteria.religious_affiliations:
        summary.active_count += len(criteria.religious_affiliations)
        summary.description.append(", ".join(criteria.religious_affiliations))

    return summary


# ─── Search ──────────────────────────────────────────────────────────

# Per field, tiers are tried in order and only the first that matches scores.
# Tier kinds: "word" = whole-word match, "prefix" = field starts with the
# query, "substring" = query anywhere in the field.
_SCORING: tuple[tuple[str, tuple[tuple[str, int], ...]], ...] = (
    ("name", (("word", 100), ("prefix", 80), ("substring", 60))),
    ("address", (("word", 50), ("substring", 30))),
    ("postcode", (("word", 40), ("prefix", 25))),
    ("borough", (("word", 35), ("substring", 20))),
)


def _compile_patterns(term: str) -> dict[str, re.Pattern[str]]:
    escaped = re.escape(term)
    return {
        "word": re.compile(rf"\b{escaped}\b", re.IGNORECASE),
        "prefix": re.compile(rf"^{escaped}", re.IGNORECASE),
        "substring": re.compile(escaped, re.IGNORECASE),
    }


def score_record(record: SchoolRecord, patterns: dict[str, re.Pattern[str]]) -> SearchResult:
    score = 0
    matched: list[str] = []
    for field_name, tiers in _SCORING:
        text = getattr(record, field_name) or ""
        for kind, points in tiers:
            if patterns[kind].search(text):
                score += points
                matched.append(field_name)
                break
    return SearchResult(record=record, relevance_score=score, matched_fields=matched)


def search(
    records: Sequence[SchoolRecord], query: str, limit: int = MAX_SEARCH_RESULTS
) -> list[SearchResult]:
    """Rank records against a case-insensitive query.

    Returns at most `limit` results with a positive score, best first. A blank
    query returns nothing rather than everything.
    """
    term = query.strip().lower()
    if not term:
        return []

    patterns = _compile_patterns(term)
    scored = (score_record(record, patterns) for record in records)
    results = [result for result in scored if result.relevance_score > 0]
    results.sort(key=lambda r: r.relevance_score, reverse=True)
    return results[:limit]


# ─── Memoising Engine ────────────────────────────────────────────────


class QueryEngine:
    """apply_filters and search behind per-operation TTL caches.

    Keys combine the size of the record set with the canonical criteria or
    query, so distinct queries never collide. Two different record sets of
    the same size DO collide within the TTL; call invalidate() after
    replacing the record set.
    """

    def __init__(
        self,
        filter_ttl: float = DEFAULT_FILTER_TTL,
        search_ttl: float = DEFAULT_SEARCH_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._filter_cache = TTLCache(filter_ttl, clock=clock)
        self._search_cache = TTLCache(search_ttl, clock=clock)

    def filter(
        self, records: Sequence[SchoolRecord], criteria: FilterCriteria
    ) -> Sequence[SchoolRecord]:
        key = ("filter", len(records), criteria.model_dump_json(exclude_none=True))
        cached = self._filter_cache.get(key)
        if cached is not None:
            logger.debug("Filter cache hit")
            return cached

        result = apply_filters(records, criteria)
        self._filter_cache.set(key, result)
        return result

    def search(self, records: Sequence[SchoolRecord], query: str) -> list[SearchResult]:
        key = ("search", len(records), query.strip().lower())
        cached = self._search_cache.get(key)
        if cached is not None:
            logger.debug("Search cache hit for %r", query)
            return cached

        results = search(records, query)
        self._search_cache.set(key, results)
        return results

    def invalidate(self) -> None:
        """Drop every memoised result, e.g. after the record set changed."""
        self._filter_cache.invalidate()
        self._search_cache.invalidate()

    def stats(self) -> dict[str, Union[int, float]]:
        return {
            "filter_entries": len(self._filter_cache),
            "search_entries": len(self._search_cache),
            "filter_ttl": self._filter_cache.ttl,
            "search_ttl": self._search_cache.ttl,
        }
