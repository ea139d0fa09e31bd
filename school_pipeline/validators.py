"""
Deterministic field checks for parsed school records.

Each validator function:
  - Takes a SchoolRecord
  - Returns a list of ValidationIssue objects (empty = all clear)
  - Has no side effects and performs no I/O

Coordinate repair needs the network and lives in the pipeline instead.
validate_all_fields() runs every check here and aggregates the issues.
"""

from __future__ import annotations

import math

from pydantic import AnyUrl, TypeAdapter, ValidationError

from .models import SchoolColor, SchoolRecord, Severity, ValidationIssue


# ─── Constants ───────────────────────────────────────────────────────

REQUIRED_FIELDS: tuple[str, ...] = (
    "id", "name", "address", "school_type", "gender", "level", "color",
)

VALID_COLORS: frozenset[str] = frozenset(color.value for color in SchoolColor)
VALID_CURRENCIES: frozenset[str] = frozenset({"GBP", "USD", "EUR"})
VALID_COST_PERIODS: frozenset[str] = frozenset({"year", "term"})

MIN_NAME_LENGTH = 3
MIN_ADDRESS_LENGTH = 10
COMPETITIVENESS_RANGE = (1, 5)

_URL_ADAPTER: TypeAdapter[AnyUrl] = TypeAdapter(AnyUrl)


# ─── Orchestrator ────────────────────────────────────────────────────


def validate_all_fields(record: SchoolRecord) -> list[ValidationIssue]:
    """Run every field validator and collect the issues."""
    issues: list[ValidationIssue] = []
    issues.extend(validate_required_fields(record))
    issues.extend(validate_id(record))
    issues.extend(validate_name(record))
    issues.extend(validate_address(record))
    issues.extend(validate_color(record))
    issues.extend(validate_cost(record))
    issues.extend(validate_competitiveness(record))
    issues.extend(validate_website(record))
    return issues


# ─── Individual Validators ───────────────────────────────────────────


def validate_required_fields(record: SchoolRecord) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    for field_name in REQUIRED_FIELDS:
        value = getattr(record, field_name)
        if value is None or value == "":
            issues.append(
                ValidationIssue(
                    field=field_name,
                    severity=Severity.ERROR,
                    code="MISSING_REQUIRED_FIELD",
                    message=f"Required field '{field_name}' is missing or empty",
                )
            )

    return issues


def validate_id(record: SchoolRecord) -> list[ValidationIssue]:
    if record.id.strip():
        return []
    return [
        ValidationIssue(
            field="id",
            severity=Severity.ERROR,
            code="INVALID_ID",
            message="ID must be a non-empty string",
        )
    ]


def validate_name(record: SchoolRecord) -> list[ValidationIssue]:
    if not record.name or len(record.name) >= MIN_NAME_LENGTH:
        return []
    return [
        ValidationIssue(
            field="name",
            severity=Severity.ERROR,
            code="NAME_TOO_SHORT",
            message=f"School name must be at least {MIN_NAME_LENGTH} characters long",
        )
    ]


def validate_address(record: SchoolRecord) -> list[ValidationIssue]:
    """Short addresses rarely geocode well. A warning, not a rejection."""
    if not record.address or len(record.address) >= MIN_ADDRESS_LENGTH:
        return []
    return [
        ValidationIssue(
            field="address",
            severity=Severity.WARNING,
            code="ADDRESS_TOO_SHORT",
            message="Address seems too short, may cause geocoding issues",
        )
    ]


def validate_color(record: SchoolRecord) -> list[ValidationIssue]:
    if not record.color or record.color in VALID_COLORS:
        return []
    return [
        ValidationIssue(
            field="color",
            severity=Severity.ERROR,
            code="INVALID_COLOR",
            message=(
                f"Color '{record.color}' is not in the school colour scheme. "
                f"Expected one of: {', '.join(sorted(VALID_COLORS))}"
            ),
        )
    ]


def validate_cost(record: SchoolRecord) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    cost = record.cost

    amount = cost.amount
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount):
        issues.append(
            ValidationIssue(
                field="cost",
                severity=Severity.ERROR,
                code="COST_NOT_NUMERIC",
                message=f"Cost amount must be a number, got {amount!r}",
            )
        )

    if cost.currency not in VALID_CURRENCIES:
        issues.append(
            ValidationIssue(
                field="cost",
                severity=Severity.WARNING,
                code="COST_CURRENCY_UNKNOWN",
                message=(
                    f"Cost currency '{cost.currency}' should be one of "
                    f"{', '.join(sorted(VALID_CURRENCIES))}"
                ),
            )
        )

    if cost.period not in VALID_COST_PERIODS:
        issues.append(
            ValidationIssue(
                field="cost",
                severity=Severity.WARNING,
                code="COST_PERIOD_UNKNOWN",
                message=f"Cost period should be either \"year\" or \"term\", got '{cost.period}'",
            )
        )

    return issues


def validate_competitiveness(record: SchoolRecord) -> list[ValidationIssue]:
    low, high = COMPETITIVENESS_RANGE
    if low <= record.competitiveness <= high:
        return []
    return [
        ValidationIssue(
            field="competitiveness",
            severity=Severity.ERROR,
            code="COMPETITIVENESS_OUT_OF_RANGE",
            message=(
                f"Competitiveness must be between {low} and {high}, "
                f"got {record.competitiveness}"
            ),
        )
    ]


def validate_website(record: SchoolRecord) -> list[ValidationIssue]:
    """A malformed website is flagged but never sinks the record."""
    if not record.website:
        return []
    try:
        _URL_ADAPTER.validate_python(record.website)
    except ValidationError:
        return [
            ValidationIssue(
                field="website",
                severity=Severity.WARNING,
                code="WEBSITE_MALFORMED",
                message=f"Website URL '{record.website}' appears to be invalid",
            )
        ]
    return []
