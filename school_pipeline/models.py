"""
Pydantic models for school data — typed records from parse to query.

Models are deliberately permissive about VALUES (a colour is any string, a
competitiveness is any int, coordinates may sit outside the globe). The
validation engine is what reports bad values; the model only fixes the shape.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field


# ─── Enumerations ───────────────────────────────────────────────────


class SchoolType(str, Enum):
    GRAMMAR = "Grammar"
    PRIVATE = "Private"
    STATE_PRIMARY = "State Primary"
    STATE_PRIMARY_FAITH = "State Primary (Faith)"
    COMPREHENSIVE = "Comprehensive"


class Gender(str, Enum):
    BOYS = "Boys"
    GIRLS = "Girls"
    COED = "Co-ed"


class Level(str, Enum):
    PRIMARY = "Primary"
    SECONDARY = "Secondary"


class County(str, Enum):
    LONDON = "London"
    BUCKINGHAMSHIRE = "Buckinghamshire"
    KENT = "Kent"


class SchoolColor(str, Enum):
    """Marker colour palette. Anything outside it is reported as an error."""

    GIRLS_SECONDARY = "#FF69B4"  # Pink
    GIRLS_PRIMARY = "#9370DB"  # Purple
    BOYS_SECONDARY = "#00008B"  # Dark Blue
    BOYS_PRIMARY = "#87CEEB"  # Light Blue
    COED_SECONDARY = "#228B22"  # Green
    COED_PRIMARY = "#FFD700"  # Yellow
    OTHER = "#FF0000"  # Red


class BoardingOption(str, Enum):
    DAY = "Day"
    BOARDING = "Boarding"
    BOTH = "Both"


class Severity(str, Enum):
    """Severity of a validation issue."""

    ERROR = "error"  # Record is invalid
    WARNING = "warning"  # Suspicious, record still usable
    INFO = "info"  # Informational observation


class GeocodingErrorCode(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    NO_RESULTS = "NO_RESULTS"
    INVALID_ADDRESS = "INVALID_ADDRESS"


# ─── Record Substructures ───────────────────────────────────────────


class Coordinates(BaseModel):
    """A lat/lng pair. Range is checked by is_valid_coordinates, not here."""

    lat: float
    lng: float


class Cost(BaseModel):
    amount: float = 0
    currency: str = "GBP"
    period: str = "year"  # "year" | "term"
    is_free: bool = True
    voluntary_contribution: Optional[int] = None
    includes_vat: Optional[bool] = None


class Ranking(BaseModel):
    position: int
    total: Optional[int] = None
    source: str  # The raw ranking text, kept for display
    year: Optional[int] = None


class SuccessRate(BaseModel):
    percentage: Optional[float] = None
    description: str
    type: str = "qualitative"  # "exact" | "qualitative"
    target_schools: list[str] = Field(default_factory=list)


class Transport(BaseModel):
    nearest_station: Optional[str] = None
    walking_time: Optional[str] = None
    journey_time: Optional[str] = None
    bus_routes: list[str] = Field(default_factory=list)


class Admissions(BaseModel):
    catchment_area: Optional[str] = None
    catchment_radius: Optional[float] = None
    special_requirements: Optional[str] = None
    application_deadline: Optional[str] = None


# ─── Parser Accumulator ─────────────────────────────────────────────


class RawSchoolRecord(BaseModel):
    """What the parser accumulates for one numbered entry.

    Fields are Optional because a document may omit any of them; the
    completeness check at flush time decides whether it becomes a record.
    """

    id: Optional[str] = None
    name: Optional[str] = None
    school_type: Optional[SchoolType] = None
    gender: Optional[Gender] = None
    level: Optional[Level] = None
    address: Optional[str] = None
    postcode: Optional[str] = None
    borough: Optional[str] = None
    county: Optional[County] = None
    color: Optional[SchoolColor] = None
    cost: Optional[Cost] = None
    competitiveness: Optional[int] = None
    ranking: Optional[Ranking] = None
    notes: Optional[str] = None
    website: Optional[str] = None


# ─── School Record ──────────────────────────────────────────────────


class SchoolRecord(BaseModel):
    """A school after parsing. Mutated at most once: coordinate repair."""

    id: str = ""
    name: str = ""
    school_type: Optional[SchoolType] = None
    gender: Optional[Gender] = None
    level: Optional[Level] = None
    address: str = ""
    postcode: str = ""
    borough: str = ""
    county: Optional[County] = None
    coordinates: Optional[Coordinates] = None
    cost: Cost = Field(default_factory=Cost)
    competitiveness: int = 3  # 1-5 scale
    color: str = ""
    ranking: Optional[Ranking] = None
    website: Optional[str] = None
    notes: str = ""
    ofsted_rating: Optional[str] = None
    boarding_options: Optional[BoardingOption] = None
    religious_affiliation: Optional[str] = None
    success_rates: Optional[list[SuccessRate]] = None
    transport: Optional[Transport] = None
    admissions: Optional[Admissions] = None


class ParsedDocument(BaseModel):
    """Parser output: complete records plus the document's colour legend."""

    records: list[SchoolRecord] = Field(default_factory=list)
    color_legend: dict[str, str] = Field(default_factory=dict)


# ─── Geocoding ──────────────────────────────────────────────────────


class GeocodingResult(BaseModel):
    coordinates: Coordinates
    formatted_address: Optional[str] = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


# ─── Validation ─────────────────────────────────────────────────────


class ValidationIssue(BaseModel):
    """A single finding on one field of one record."""

    field: str  # Which record field this relates to
    severity: Severity
    message: str  # Human-readable explanation
    code: str = ""  # Machine-readable, e.g. "MISSING_REQUIRED_FIELD"


class ValidationResult(BaseModel):
    record: SchoolRecord
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    geocoding_result: Optional[GeocodingResult] = None


class ValidationSummary(BaseModel):
    """Outcome of a batch. Always: valid_count + invalid_count == total."""

    total: int
    valid_count: int
    invalid_count: int
    geocoding_error_count: int
    per_record_results: list[ValidationResult] = Field(default_factory=list)
    all_issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def success_rate(self) -> int:
        """Percentage of valid records, rounded (0 for an empty batch)."""
        if self.total == 0:
            return 0
        return round(self.valid_count / self.total * 100)

    @property
    def valid_records(self) -> list[SchoolRecord]:
        return [r.record for r in self.per_record_results if r.is_valid]


# ─── Query ──────────────────────────────────────────────────────────


class NumericRange(BaseModel):
    """Inclusive range; a missing bound is open on that side."""

    min: Optional[float] = None
    max: Optional[float] = None

    def contains(self, value: Union[int, float]) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


class FilterCriteria(BaseModel):
    """Independent, optional predicates combined with AND.

    An unset predicate (None or an empty list) matches everything.
    """

    school_types: Optional[list[SchoolType]] = None
    genders: Optional[list[Gender]] = None
    levels: Optional[list[Level]] = None
    counties: Optional[list[County]] = None
    boroughs: Optional[list[str]] = None
    cost_range: Optional[NumericRange] = None
    competitiveness: Optional[list[int]] = None
    ranking_range: Optional[NumericRange] = None
    boarding_options: Optional[list[BoardingOption]] = None
    religious_affiliations: Optional[list[str]] = None

    def is_empty(self) -> bool:
        return not any(
            value for value in (
                self.school_types,
                self.genders,
                self.levels,
                self.counties,
                self.boroughs,
                self.competitiveness,
                self.boarding_options,
                self.religious_affiliations,
            )
        ) and self.cost_range is None and self.ranking_range is None


class SearchResult(BaseModel):
    record: SchoolRecord
    relevance_score: int
    matched_fields: list[str] = Field(default_factory=list)


class FilterSummary(BaseModel):
    """Human-oriented description of which filters are active."""

    active_count: int = 0
    description: list[str] = Field(default_factory=list)
