"""
Tests for the validation engine: coordinate repair, batching and summaries.

A scripted geocoder stands in for Nominatim; batch pauses go through a fake
sleep so nothing here waits on the wall clock.

Run: pytest tests/ -v
"""

from __future__ import annotations

from typing import Any

import pytest

from school_pipeline.config import Settings
from school_pipeline.exceptions import NoResultsError
from school_pipeline.geocoder import CachedGeocoder, DisabledGeocoder, Geocoder
from school_pipeline.models import (
    Coordinates,
    County,
    Gender,
    GeocodingResult,
    Level,
    SchoolColor,
    SchoolRecord,
    SchoolType,
    Severity,
)
from school_pipeline.pipeline import GEOCODING_FAILED, SchoolDataPipeline


# ─── Test Data ───────────────────────────────────────────────────────

LISTING = """
## LONDON SCHOOLS

### BARNET

**1. The Henrietta Barnett School**
- **School Type:** Grammar
- **Type:** Girls Secondary
- **Color:** #FF69B4 (Pink)
- **Address:** Central Square, Hampstead Garden Suburb, London NW11 7BN
- **Ranking:** 9th nationally
- **Annual Cost:** Free (voluntary contributions expected)
- **Competitiveness:** 5/5
- **Notes:** Two-stage 11+ process.

**2. Queen Elizabeth's School, Barnet**
- **School Type:** Grammar
- **Type:** Boys Secondary
- **Color:** #00008B (Dark Blue)
- **Address:** Queen's Road, Barnet, EN5 4DQ
- **Ranking:** 11th nationally
- **Annual Cost:** Free (voluntary fund £360-480/year)
- **Competitiveness:** 5/5
- **Notes:** No catchment.
"""


# ─── Test Helpers ────────────────────────────────────────────────────


class ScriptedGeocoder(Geocoder):
    """Returns the scripted result for an address, else NO_RESULTS."""

    def __init__(self, results: dict[str, GeocodingResult] | None = None, default=None):
        self.results = results or {}
        self.default = default
        self.calls: list[str] = []

    async def resolve(self, address: str) -> GeocodingResult:
        self.calls.append(address)
        if address in self.results:
            return self.results[address]
        if self.default is not None:
            return self.default
        raise NoResultsError(f"No geocoding results found for address: {address}", address)


class PauseCounter:
    def __init__(self):
        self.pauses: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.pauses.append(seconds)


def _make_record(**overrides: Any) -> SchoolRecord:
    kwargs: dict[str, Any] = {
        "id": "1",
        "name": "Queen Elizabeth's School, Barnet",
        "school_type": SchoolType.GRAMMAR,
        "gender": Gender.BOYS,
        "level": Level.SECONDARY,
        "address": "Queen's Road, Barnet, EN5 4DQ",
        "postcode": "EN5 4DQ",
        "borough": "BARNET",
        "county": County.LONDON,
        "competitiveness": 5,
        "color": SchoolColor.BOYS_SECONDARY.value,
        "coordinates": Coordinates(lat=51.6559, lng=-0.2071),
    }
    kwargs.update(overrides)
    return SchoolRecord(**kwargs)


GOOD_RESULT = GeocodingResult(
    coordinates=Coordinates(lat=51.6559, lng=-0.2071),
    formatted_address="Queen Elizabeth's School, Queen's Road, Barnet",
    confidence=0.9,
)


# ═══════════════════════════════════════════════════════════════════════
# SINGLE RECORD
# ═══════════════════════════════════════════════════════════════════════


class TestValidateRecord:
    @pytest.mark.asyncio
    async def test_valid_coordinates_skip_geocoding(self):
        geocoder = ScriptedGeocoder()
        result = await SchoolDataPipeline(geocoder).validate_record(_make_record())
        assert result.is_valid
        assert result.issues == []
        assert result.geocoding_result is None
        assert geocoder.calls == []

    @pytest.mark.asyncio
    async def test_missing_coordinates_are_repaired(self):
        geocoder = ScriptedGeocoder({"Queen's Road, Barnet, EN5 4DQ": GOOD_RESULT})
        record = _make_record(coordinates=None)

        result = await SchoolDataPipeline(geocoder).validate_record(record)

        assert result.is_valid
        assert record.coordinates == GOOD_RESULT.coordinates
        assert result.record.coordinates == GOOD_RESULT.coordinates
        assert result.geocoding_result == GOOD_RESULT
        assert [i.code for i in result.issues] == ["COORDINATES_GEOCODED"]
        assert result.issues[0].severity == Severity.INFO

    @pytest.mark.asyncio
    async def test_out_of_range_coordinates_are_repaired(self):
        geocoder = ScriptedGeocoder(default=GOOD_RESULT)
        record = _make_record(coordinates=Coordinates(lat=200, lng=0))
        result = await SchoolDataPipeline(geocoder).validate_record(record)
        assert result.is_valid
        assert record.coordinates.lat == pytest.approx(51.6559)

    @pytest.mark.asyncio
    async def test_geocoding_failure_leaves_coordinates_alone(self):
        bad = Coordinates(lat=999, lng=999)
        record = _make_record(address="Invalid Address That Cannot Be Geocoded", coordinates=bad)

        result = await SchoolDataPipeline(ScriptedGeocoder()).validate_record(record)

        assert not result.is_valid
        assert record.coordinates == bad
        failures = [i for i in result.issues if i.code == "GEOCODING_FAILED"]
        assert len(failures) == 1
        assert failures[0].severity == Severity.ERROR
        assert "NO_RESULTS" in failures[0].message

    @pytest.mark.asyncio
    async def test_low_confidence_is_a_warning(self):
        weak = GOOD_RESULT.model_copy(update={"confidence": 0.3})
        record = _make_record(coordinates=None)

        result = await SchoolDataPipeline(ScriptedGeocoder(default=weak)).validate_record(record)

        assert result.is_valid
        assert [i.code for i in result.issues] == ["GEOCODING_LOW_CONFIDENCE"]
        assert result.issues[0].severity == Severity.WARNING
        assert record.coordinates == weak.coordinates

    @pytest.mark.asyncio
    async def test_no_address_means_unresolvable(self):
        geocoder = ScriptedGeocoder(default=GOOD_RESULT)
        record = _make_record(address="", coordinates=None)

        result = await SchoolDataPipeline(geocoder).validate_record(record)

        assert not result.is_valid
        assert "COORDINATES_UNRESOLVABLE" in [i.code for i in result.issues]
        assert geocoder.calls == []

    @pytest.mark.asyncio
    async def test_field_errors_and_repair_combine(self):
        geocoder = ScriptedGeocoder(default=GOOD_RESULT)
        record = _make_record(coordinates=None, competitiveness=10)
        result = await SchoolDataPipeline(geocoder).validate_record(record)
        assert not result.is_valid
        assert {i.code for i in result.issues} == {
            "COMPETITIVENESS_OUT_OF_RANGE",
            "COORDINATES_GEOCODED",
        }


# ═══════════════════════════════════════════════════════════════════════
# BATCH
# ═══════════════════════════════════════════════════════════════════════


class TestValidateAll:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 1, 10, 25])
    async def test_totals_always_add_up(self, count):
        records = [
            _make_record(id=str(i), coordinates=None if i % 3 == 0 else Coordinates(lat=51, lng=0))
            for i in range(count)
        ]
        pipeline = SchoolDataPipeline(ScriptedGeocoder(), batch_size=10, sleep=PauseCounter())

        summary = await pipeline.validate_all(records)

        assert summary.total == count
        assert summary.valid_count + summary.invalid_count == summary.total
        assert len(summary.per_record_results) == count
        assert summary.geocoding_error_count == len(range(0, count, 3))

    @pytest.mark.asyncio
    async def test_pauses_only_between_chunks(self):
        sleep = PauseCounter()
        pipeline = SchoolDataPipeline(ScriptedGeocoder(), batch_size=10, batch_pause=1.0, sleep=sleep)
        await pipeline.validate_all([_make_record(id=str(i)) for i in range(25)])
        assert sleep.pauses == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_zero_pause_never_sleeps(self):
        sleep = PauseCounter()
        pipeline = SchoolDataPipeline(ScriptedGeocoder(), batch_size=2, batch_pause=0, sleep=sleep)
        await pipeline.validate_all([_make_record(id=str(i)) for i in range(5)])
        assert sleep.pauses == []

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        records = [_make_record(id=str(i)) for i in range(12)]
        pipeline = SchoolDataPipeline(ScriptedGeocoder(), batch_size=5, batch_pause=0)
        summary = await pipeline.validate_all(records)
        assert [r.record.id for r in summary.per_record_results] == [str(i) for i in range(12)]

    @pytest.mark.asyncio
    async def test_unexpected_crash_is_isolated(self):
        class ExplodingGeocoder(Geocoder):
            async def resolve(self, address: str) -> GeocodingResult:
                if "boom" in address:
                    raise RuntimeError("provider exploded")
                return GOOD_RESULT

        records = [
            _make_record(id="1", coordinates=None),
            _make_record(id="2", coordinates=None, address="boom street, Barnet"),
            _make_record(id="3", coordinates=None),
        ]
        pipeline = SchoolDataPipeline(ExplodingGeocoder(), batch_pause=0)

        summary = await pipeline.validate_all(records)

        assert summary.total == 3
        assert summary.valid_count == 2
        crashed = summary.per_record_results[1]
        assert not crashed.is_valid
        assert [i.code for i in crashed.issues] == ["VALIDATION_FAILED"]

    @pytest.mark.asyncio
    async def test_success_rate_and_valid_records(self):
        records = [_make_record(id="1"), _make_record(id="2", competitiveness=9)]
        summary = await SchoolDataPipeline(ScriptedGeocoder(), batch_pause=0).validate_all(records)
        assert summary.success_rate == 50
        assert [r.id for r in summary.valid_records] == ["1"]
        assert len(summary.all_issues) == 1

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        summary = await SchoolDataPipeline(ScriptedGeocoder()).validate_all([])
        assert summary.total == 0
        assert summary.success_rate == 0


# ═══════════════════════════════════════════════════════════════════════
# END-TO-END
# ═══════════════════════════════════════════════════════════════════════


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_listing_parses_geocodes_and_validates(self):
        geocoder = CachedGeocoder(ScriptedGeocoder(default=GOOD_RESULT))
        pipeline = SchoolDataPipeline(geocoder, batch_pause=0)

        parsed, summary = await pipeline.run(LISTING)

        assert len(parsed.records) == 2
        assert summary.total == 2
        assert summary.valid_count == 2
        assert summary.geocoding_error_count == 0
        assert all(r.coordinates is not None for r in summary.valid_records)
        assert geocoder.cache_stats()["size"] == 2

    @pytest.mark.asyncio
    async def test_offline_run_reports_geocoding_errors(self):
        pipeline = SchoolDataPipeline(DisabledGeocoder(), batch_pause=0)
        _, summary = await pipeline.run(LISTING)
        assert summary.invalid_count == 2
        assert summary.geocoding_error_count == 2
        failures = [i for i in summary.all_issues if i.code == GEOCODING_FAILED]
        assert len(failures) == summary.geocoding_error_count

    def test_from_settings(self):
        settings = Settings(validation_batch_size=4, validation_batch_pause=0.5)
        pipeline = SchoolDataPipeline.from_settings(settings, geocoder=DisabledGeocoder())
        assert pipeline.batch_size == 4
        assert pipeline.batch_pause == 0.5
        assert isinstance(pipeline.geocoder, DisabledGeocoder)

    def test_rejects_zero_batch_size(self):
        with pytest.raises(ValueError):
            SchoolDataPipeline(DisabledGeocoder(), batch_size=0)
