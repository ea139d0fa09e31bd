"""
Validation engine — field checks, coordinate repair and batch orchestration.

Flow:
  ┌──────────┐
  │ Document │
  └────┬─────┘
       │
  ┌────▼─────┐
  │  Parser  │   ← Complete records + colour legend
  └────┬─────┘
       │
  ┌────▼─────────────┐     ┌──────────────────┐
  │ Field validators │     │ Coordinate repair│  ← CachedGeocoder,
  └────┬─────────────┘     └────┬─────────────┘    one call max per record
       │                        │
       └──────────┬─────────────┘
                  │
           ┌──────▼──────┐
           │   Summary   │   ← valid + invalid == total, always
           └─────────────┘

Batches are processed in chunks: every record in a chunk is validated
concurrently, then the engine pauses before the next chunk. All geocoding
calls still funnel through the geocoder's single rate limiter, so the
concurrency overlaps local work, not requests to the provider.

A failure in one record never aborts the batch; the worst case for a record
is is_valid=False with issues explaining why.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Optional

from .config import Settings
from .exceptions import GeocodingError
from .geocoder import Geocoder, build_geocoder, is_valid_coordinates
from .models import (
    GeocodingResult,
    ParsedDocument,
    SchoolRecord,
    Severity,
    ValidationIssue,
    ValidationResult,
    ValidationSummary,
)
from .parser import parse_document
from .validators import validate_all_fields

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 0.5
GEOCODING_FAILED = "GEOCODING_FAILED"


class SchoolDataPipeline:
    """Validates parsed school records, repairing coordinates on the way.

    Usage:
        pipeline = SchoolDataPipeline(geocoder)
        summary = await pipeline.validate_all(records)
        if summary.invalid_count:
            for result in summary.per_record_results:
                ...
    """

    def __init__(
        self,
        geocoder: Geocoder,
        batch_size: int = 10,
        batch_pause: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.geocoder = geocoder
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, settings: Settings, geocoder: Optional[Geocoder] = None
    ) -> "SchoolDataPipeline":
        return cls(
            geocoder=geocoder if geocoder is not None else build_geocoder(settings),
            batch_size=settings.validation_batch_size,
            batch_pause=settings.validation_batch_pause,
        )

    # ─── Single Record ──────────────────────────────────────────────

    async def validate_record(self, record: SchoolRecord) -> ValidationResult:
        """Run field checks and, if needed, repair the record's coordinates.

        The record's coordinates are overwritten only when they were absent
        or out of range and geocoding succeeded.
        """
        issues = validate_all_fields(record)
        geocoding_result = await self._repair_coordinates(record, issues)

        has_errors = any(issue.severity == Severity.ERROR for issue in issues)
        return ValidationResult(
            record=record,
            is_valid=not has_errors,
            issues=issues,
            geocoding_result=geocoding_result,
        )

    async def _repair_coordinates(
        self, record: SchoolRecord, issues: list[ValidationIssue]
    ) -> Optional[GeocodingResult]:
        if is_valid_coordinates(record.coordinates):
            return None

        if not record.address:
            issues.append(
                ValidationIssue(
                    field="coordinates",
                    severity=Severity.ERROR,
                    code="COORDINATES_UNRESOLVABLE",
                    message="Invalid coordinates and no address provided for geocoding",
                )
            )
            return None

        try:
            result = await self.geocoder.resolve(record.address)
        except GeocodingError as exc:
            logger.warning("Geocoding failed for record %s: %s", record.id, exc)
            issues.append(
                ValidationIssue(
                    field="coordinates",
                    severity=Severity.ERROR,
                    code=GEOCODING_FAILED,
                    message=f"Geocoding failed ({exc.code}): {exc.message}",
                )
            )
            return None

        record.coordinates = result.coordinates

        if result.confidence < LOW_CONFIDENCE_THRESHOLD:
            issues.append(
                ValidationIssue(
                    field="coordinates",
                    severity=Severity.WARNING,
                    code="GEOCODING_LOW_CONFIDENCE",
                    message=(
                        f"Geocoding confidence is low ({result.confidence:.0%}) "
                        f"for address: {record.address}"
                    ),
                )
            )
        else:
            issues.append(
                ValidationIssue(
                    field="coordinates",
                    severity=Severity.INFO,
                    code="COORDINATES_GEOCODED",
                    message=f"Coordinates geocoded successfully for address: {record.address}",
                )
            )
        return result

    # ─── Batch ──────────────────────────────────────────────────────

    async def validate_all(self, records: Sequence[SchoolRecord]) -> ValidationSummary:
        """Validate every record in chunks, pausing between chunks.

        Never raises for a single bad record: unexpected failures become an
        error issue on that record.
        """
        results: list[ValidationResult] = []
        total = len(records)

        for start in range(0, total, self.batch_size):
            chunk = records[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.validate_record(record) for record in chunk),
                return_exceptions=True,
            )
            for record, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    results.append(self._failed_result(record, outcome))
                else:
                    results.append(outcome)

            logger.info("Validated %d/%d record(s)", len(results), total)

            if start + self.batch_size < total and self.batch_pause > 0:
                await self._sleep(self.batch_pause)

        return self._summarize(results)

    async def run(self, document: str) -> tuple[ParsedDocument, ValidationSummary]:
        """Parse a document and validate every record it yields."""
        parsed = parse_document(document)
        summary = await self.validate_all(parsed.records)
        return parsed, summary

    # ─── Helpers ────────────────────────────────────────────────────

    @staticmethod
    def _failed_result(record: SchoolRecord, error: Exception) -> ValidationResult:
        logger.error("Validation crashed for record %s: %s", record.id, error)
        return ValidationResult(
            record=record,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="id",
                    severity=Severity.ERROR,
                    code="VALIDATION_FAILED",
                    message=f"Validation failed unexpectedly: {error}",
                )
            ],
        )

    @staticmethod
    def _summarize(results: list[ValidationResult]) -> ValidationSummary:
        valid_count = sum(1 for r in results if r.is_valid)
        geocoding_errors = sum(
            1
            for r in results
            if any(i.code == GEOCODING_FAILED for i in r.issues)
        )
        all_issues = [issue for r in results for issue in r.issues]

        summary = ValidationSummary(
            total=len(results),
            valid_count=valid_count,
            invalid_count=len(results) - valid_count,
            geocoding_error_count=geocoding_errors,
            per_record_results=results,
            all_issues=all_issues,
        )
        logger.info(
            "Validation complete: %d valid, %d invalid, %d geocoding error(s)",
            summary.valid_count,
            summary.invalid_count,
            summary.geocoding_error_count,
        )
        return summary
