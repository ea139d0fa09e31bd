"""
Contextual line parser for the school listing document.

The document is semi-structured markdown:

    ### Color Coding System
    - **Pink (#FF69B4):** Girls Secondary

    ## LONDON SCHOOLS
    ### BARNET
    **1. The Henrietta Barnett School**
    - **School Type:** Grammar
    - **Address:** Central Square, Hampstead Garden Suburb, London NW11 7BN
    ...

A single forward scan keeps one open accumulator. A numbered bold header
flushes the previous accumulator (if complete) and opens a new one; bulleted
properties are dispatched to typed setters. Section headers are tracked on a
stack so every record knows its county and borough without rescanning.

Philosophy: parsing never fails. Malformed input yields fewer records.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from .models import (
    Cost,
    County,
    Gender,
    Level,
    ParsedDocument,
    Ranking,
    RawSchoolRecord,
    SchoolColor,
    SchoolRecord,
    SchoolType,
)

logger = logging.getLogger(__name__)


# ─── Line Patterns ──────────────────────────────────────────────────

_LEGEND_LABEL = re.compile(r"\*\*([^*]+)\*\*")
_LEGEND_COLOR = re.compile(r"\(#([0-9A-Fa-f]{6})\)")
_RECORD_HEADER = re.compile(r"^\*\*(\d+)\.\s+(.+?)\*\*$")
_PROPERTY = re.compile(r"^- \*\*([^*]+):\*\*\s*(.+)$")
_SECTION_HEADER = re.compile(r"^(#{1,6})\s+(.+)$")

_HEX_COLOR = re.compile(r"#([0-9A-Fa-f]{6})")
_UK_POSTCODE = re.compile(r"([A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2})")
_VOLUNTARY_AMOUNT = re.compile(r"voluntary[^£]*£(\d[\d,]*)", re.IGNORECASE)
_FEE_AMOUNT = re.compile(r"£(\d[\d,]*)")
_ORDINAL = re.compile(r"\b(\d+)(?:st|nd|rd|th)\b", re.IGNORECASE)
_TOP_N = re.compile(r"\btop\s+(\d+)", re.IGNORECASE)
_BARE_NUMBER = re.compile(r"\b(\d{1,3})\b")
_YEAR = re.compile(r"\b(\d{4})\b")
_OUT_OF_FIVE = re.compile(r"(\d)/5")

# Ordered: the first substring that matches wins.
_SCHOOL_TYPE_MARKERS: tuple[tuple[str, SchoolType], ...] = (
    ("Grammar", SchoolType.GRAMMAR),
    ("Private", SchoolType.PRIVATE),
    ("State Primary (Faith)", SchoolType.STATE_PRIMARY_FAITH),
    ("State Primary", SchoolType.STATE_PRIMARY),
    ("Comprehensive", SchoolType.COMPREHENSIVE),
)

_COUNTY_MARKERS: dict[str, County] = {
    "LONDON SCHOOLS": County.LONDON,
    "BUCKINGHAMSHIRE SCHOOLS": County.BUCKINGHAMSHIRE,
    "KENT SCHOOLS": County.KENT,
}

BOROUGH_HEADER_LEVEL = 3
UNRANKED_PLACEHOLDER_POSITION = 50
DEFAULT_COMPETITIVENESS = 3


# ─── Field Classifiers ──────────────────────────────────────────────


def classify_school_type(value: str) -> SchoolType:
    for marker, school_type in _SCHOOL_TYPE_MARKERS:
        if marker in value:
            return school_type
    return SchoolType.GRAMMAR


def classify_gender(value: str) -> Gender:
    if "Boys" in value:
        return Gender.BOYS
    if "Girls" in value:
        return Gender.GIRLS
    return Gender.COED


def classify_level(value: str) -> Level:
    return Level.PRIMARY if "Primary" in value else Level.SECONDARY


def parse_color(value: str) -> SchoolColor:
    """Map the first hex triplet in the text onto the palette, else OTHER."""
    match = _HEX_COLOR.search(value)
    if not match:
        return SchoolColor.OTHER
    try:
        return SchoolColor(f"#{match.group(1).upper()}")
    except ValueError:
        return SchoolColor.OTHER


def parse_cost(value: str) -> Cost:
    """Parse 'Free (voluntary fund £360-480/year)' or '£25,000 (inc. VAT)'.

    Free schools may carry a voluntary contribution; fee-paying schools carry
    an amount with thousands separators stripped. Text with neither shape is
    treated as free.
    """
    if "free" in value.lower():
        voluntary = _VOLUNTARY_AMOUNT.search(value)
        return Cost(
            amount=0,
            is_free=True,
            voluntary_contribution=_to_int(voluntary.group(1)) if voluntary else None,
            includes_vat=False,
        )

    fee = _FEE_AMOUNT.search(value)
    if fee:
        return Cost(
            amount=_to_int(fee.group(1)),
            is_free=False,
            includes_vat="(inc. VAT)" in value,
        )

    return Cost()


def parse_ranking(value: str) -> Ranking | None:
    """Extract a position and optional year from free ranking text.

    '9th nationally, State Secondary School of the Year 2025' → 9 (2025)
    'Top 10'                                                   → 10
    'Outstanding'                                              → 50 (placeholder)
    """
    if not value or not value.strip():
        return None

    ordinal = _ORDINAL.search(value)
    top_n = _TOP_N.search(value)
    bare = _BARE_NUMBER.search(value)
    if ordinal:
        position = int(ordinal.group(1))
    elif top_n:
        position = int(top_n.group(1))
    elif bare:
        position = int(bare.group(1))
    else:
        position = UNRANKED_PLACEHOLDER_POSITION

    year = _YEAR.search(value)
    return Ranking(
        position=position,
        source=value,
        year=int(year.group(1)) if year else None,
    )


def parse_competitiveness(value: str) -> int:
    match = _OUT_OF_FIVE.search(value or "")
    return int(match.group(1)) if match else DEFAULT_COMPETITIVENESS


def extract_postcode(address: str) -> str:
    match = _UK_POSTCODE.search(address)
    return match.group(1) if match else ""


def _to_int(digits: str) -> int:
    return int(digits.replace(",", ""))


# ─── Section Context ────────────────────────────────────────────────


class SectionContext:
    """Stack of open markdown headers, updated as the scan moves forward.

    A header of level N closes every open header of level >= N. The county
    comes from the innermost header naming one of the county sections; the
    borough is the innermost level-3 header that is not a county section.
    """

    def __init__(self) -> None:
        self._stack: list[tuple[int, str]] = []

    def push(self, level: int, title: str) -> None:
        while self._stack and self._stack[-1][0] >= level:
            self._stack.pop()
        self._stack.append((level, title))

    @property
    def county(self) -> County:
        for _, title in reversed(self._stack):
            for marker, county in _COUNTY_MARKERS.items():
                if marker in title:
                    return county
        return County.LONDON

    @property
    def borough(self) -> str:
        for level, title in reversed(self._stack):
            if level == BOROUGH_HEADER_LEVEL and "SCHOOLS" not in title:
                return title.strip()
        return ""


# ─── Property Dispatch ──────────────────────────────────────────────


class PropertyKey(str, Enum):
    """The bulleted property keys the parser understands."""

    SCHOOL_TYPE = "School Type"
    TYPE = "Type"
    COLOR = "Color"
    ADDRESS = "Address"
    RANKING = "Ranking"
    ANNUAL_COST = "Annual Cost"
    COMPETITIVENESS = "Competitiveness"
    NOTES = "Notes"
    WEBSITE = "Website"


PropertySetter = Callable[[RawSchoolRecord, str, SectionContext], None]


def _set_school_type(raw: RawSchoolRecord, value: str, _: SectionContext) -> None:
    raw.school_type = classify_school_type(value)


def _set_gender_and_level(raw: RawSchoolRecord, value: str, _: SectionContext) -> None:
    raw.gender = classify_gender(value)
    raw.level = classify_level(value)


def _set_color(raw: RawSchoolRecord, value: str, _: SectionContext) -> None:
    raw.color = parse_color(value)


def _set_address(raw: RawSchoolRecord, value: str, context: SectionContext) -> None:
    raw.address = value
    raw.postcode = extract_postcode(value)
    raw.borough = context.borough
    raw.county = context.county


def _set_ranking(raw: RawSchoolRecord, value: str, _: SectionContext) -> None:
    raw.ranking = parse_ranking(value)


def _set_cost(raw: RawSchoolRecord, value: str, _: SectionContext) -> None:
    raw.cost = parse_cost(value)


def _set_competitiveness(raw: RawSchoolRecord, value: str, _: SectionContext) -> None:
    raw.competitiveness = parse_competitiveness(value)


def _set_notes(raw: RawSchoolRecord, value: str, _: SectionContext) -> None:
    raw.notes = value


def _set_website(raw: RawSchoolRecord, value: str, _: SectionContext) -> None:
    raw.website = value.strip()


_PROPERTY_SETTERS: dict[PropertyKey, PropertySetter] = {
    PropertyKey.SCHOOL_TYPE: _set_school_type,
    PropertyKey.TYPE: _set_gender_and_level,
    PropertyKey.COLOR: _set_color,
    PropertyKey.ADDRESS: _set_address,
    PropertyKey.RANKING: _set_ranking,
    PropertyKey.ANNUAL_COST: _set_cost,
    PropertyKey.COMPETITIVENESS: _set_competitiveness,
    PropertyKey.NOTES: _set_notes,
    PropertyKey.WEBSITE: _set_website,
}

_KEYS_BY_LABEL: dict[str, PropertyKey] = {key.value: key for key in PropertyKey}


# ─── Accumulator Lifecycle ──────────────────────────────────────────


def _open_record(record_id: str, name: str) -> RawSchoolRecord:
    """Start an accumulator with the defaults a listing may leave implicit."""
    return RawSchoolRecord(
        id=record_id,
        name=name,
        address="",
        postcode="",
        borough="",
        county=County.LONDON,
        school_type=SchoolType.GRAMMAR,
        gender=Gender.COED,
        level=Level.SECONDARY,
        color=SchoolColor.OTHER,
        cost=Cost(),
        competitiveness=DEFAULT_COMPETITIVENESS,
        notes="",
    )


def is_complete(raw: RawSchoolRecord) -> bool:
    """Every field a SchoolRecord cannot do without is present."""
    return bool(
        raw.id
        and raw.name
        and raw.address
        and raw.postcode
        and raw.borough
        and raw.county
        and raw.school_type
        and raw.gender
        and raw.level
        and raw.color
        and raw.cost is not None
        and raw.competitiveness is not None
        and raw.notes is not None
    )


def _finish_record(raw: RawSchoolRecord) -> SchoolRecord:
    # Type narrowing: is_complete verified these are non-None
    assert raw.id is not None and raw.name is not None
    assert raw.address is not None and raw.postcode is not None
    assert raw.borough is not None and raw.color is not None
    assert raw.cost is not None and raw.competitiveness is not None
    assert raw.notes is not None

    return SchoolRecord(
        id=raw.id,
        name=raw.name,
        school_type=raw.school_type,
        gender=raw.gender,
        level=raw.level,
        address=raw.address,
        postcode=raw.postcode,
        borough=raw.borough,
        county=raw.county,
        cost=raw.cost,
        competitiveness=raw.competitiveness,
        color=raw.color.value,
        ranking=raw.ranking,
        website=raw.website,
        notes=raw.notes,
    )


def _flush(raw: RawSchoolRecord | None, records: list[SchoolRecord]) -> None:
    if raw is None:
        return
    if is_complete(raw):
        records.append(_finish_record(raw))
    else:
        logger.debug("Dropping incomplete entry %s (%s)", raw.id, raw.name)


# ─── Public API ─────────────────────────────────────────────────────


def parse_document(document: str) -> ParsedDocument:
    """Parse a school listing into complete records plus the colour legend.

    Args:
        document: The raw markdown text.

    Returns:
        ParsedDocument. Entries missing required data are left out.
    """
    records: list[SchoolRecord] = []
    color_legend: dict[str, str] = {}
    context = SectionContext()
    current: RawSchoolRecord | None = None

    for raw_line in document.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        # ── Colour legend: - **Pink (#FF69B4):** Girls Secondary ────
        if line.startswith("- **") and "(#" in line and "):**" in line:
            label = _LEGEND_LABEL.search(line)
            color = _LEGEND_COLOR.search(line)
            if label and color:
                color_legend[label.group(1).rstrip(":")] = f"#{color.group(1).upper()}"
            continue

        # ── Section headers feed county/borough context ─────────────
        header = _SECTION_HEADER.match(line)
        if header:
            context.push(len(header.group(1)), header.group(2).strip())
            continue

        # ── **N. Name** opens a new record ──────────────────────────
        record_header = _RECORD_HEADER.match(line)
        if record_header:
            _flush(current, records)
            current = _open_record(record_header.group(1), record_header.group(2))
            continue

        # ── - **Key:** Value inside a record ────────────────────────
        if current is not None and line.startswith("- **"):
            prop = _PROPERTY.match(line)
            if not prop:
                continue
            key = _KEYS_BY_LABEL.get(prop.group(1).strip())
            if key is not None:
                _PROPERTY_SETTERS[key](current, prop.group(2).strip(), context)

    _flush(current, records)

    logger.info(
        "Parsed %d record(s) and %d legend entr(ies)", len(records), len(color_legend)
    )
    return ParsedDocument(records=records, color_legend=color_legend)


def load_document(path: str | Path) -> ParsedDocument:
    """Read a listing from disk and parse it."""
    text = Path(path).read_text(encoding="utf-8")
    return parse_document(text)
