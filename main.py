#!/usr/bin/env python3
"""
School Pipeline — Command-line Entry Point
===========================================

Parses a school listing, validates every record (geocoding missing
coordinates), and prints a validation report.

Usage:
    python main.py schools.md                 # Geocode via Nominatim
    python main.py schools.md --no-geocode    # Offline: lookups always fail
    python main.py schools.md -v              # Debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from school_pipeline.config import Settings
from school_pipeline.geocoder import DisabledGeocoder
from school_pipeline.models import Severity, ValidationSummary
from school_pipeline.parser import load_document
from school_pipeline.pipeline import SchoolDataPipeline

logger = logging.getLogger("school_pipeline.cli")


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72

_MAX_INFO_LINES = 10
_MAX_INVALID_RECORDS = 5


# ─── Pretty Printer Helpers ─────────────────────────────────────────


def _print_issue_group(issues, color: str, label: str, limit: int | None = None) -> None:
    if not issues:
        return
    print(f"\n  {color}{_BOLD}{label} ({len(issues)}){_RESET}")
    shown = issues if limit is None else issues[:limit]
    for issue in shown:
        print(f"    {color}[{issue.code or issue.field}]{_RESET} {issue.message}")
    if limit is not None and len(issues) > limit:
        print(f"    {_DIM}... and {len(issues) - limit} more{_RESET}")


def _print_invalid_records(summary: ValidationSummary) -> None:
    invalid = [r for r in summary.per_record_results if not r.is_valid]
    if not invalid:
        return
    print(f"\n  {_BOLD}Schools with validation issues{_RESET}")
    for result in invalid[:_MAX_INVALID_RECORDS]:
        print(f"    - {result.record.name} {_DIM}(ID: {result.record.id}){_RESET}")
        for issue in result.issues:
            if issue.severity == Severity.ERROR:
                print(f"      {_RED}•{_RESET} {issue.message}")
    if len(invalid) > _MAX_INVALID_RECORDS:
        print(f"    {_DIM}... and {len(invalid) - _MAX_INVALID_RECORDS} more schools with issues{_RESET}")


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_report(summary: ValidationSummary, legend: dict[str, str]) -> int:
    """Pretty-print the validation summary.

    Returns:
        0 if every record is valid, 1 otherwise.
    """
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  SCHOOL DATA VALIDATION REPORT{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Total schools:     {summary.total}")
    print(f"  Valid schools:     {summary.valid_count}")
    print(f"  Invalid schools:   {summary.invalid_count}")
    print(f"  Geocoding errors:  {summary.geocoding_error_count}")
    print(f"  Success rate:      {summary.success_rate}%")
    if legend:
        print(f"  Legend:            {_DIM}{', '.join(legend)}{_RESET}")
    print(f"{'─' * _WIDTH}")

    errors = [i for i in summary.all_issues if i.severity == Severity.ERROR]
    warnings = [i for i in summary.all_issues if i.severity == Severity.WARNING]
    infos = [i for i in summary.all_issues if i.severity == Severity.INFO]

    _print_issue_group(errors, _RED, "ERRORS")
    _print_issue_group(warnings, _YELLOW, "WARNINGS")
    _print_issue_group(infos, _CYAN, "INFO", limit=_MAX_INFO_LINES)
    _print_invalid_records(summary)

    print(f"\n{'=' * _WIDTH}")
    if summary.invalid_count == 0:
        print(f"  {_GREEN}{_BOLD}ALL SCHOOLS PASSED VALIDATION{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}{summary.invalid_count} SCHOOL(S) FAILED VALIDATION{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if summary.invalid_count == 0 else 1


# ─── Main ────────────────────────────────────────────────────────────


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Parse and validate a school listing.")
    parser.add_argument("document", help="Path to the markdown school listing")
    parser.add_argument(
        "--no-geocode",
        action="store_true",
        help="Do not contact the geocoding provider (coordinate repair fails)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse, validate and report. Returns the process exit code."""
    load_dotenv()
    args = build_arg_parser().parse_args(argv)
    settings = Settings.from_env()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        parsed = load_document(args.document)
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Cannot read %s: %s", args.document, exc)
        return 2

    geocoder = DisabledGeocoder() if args.no_geocode else None
    pipeline = SchoolDataPipeline.from_settings(settings, geocoder=geocoder)
    summary = asyncio.run(pipeline.validate_all(parsed.records))
    return print_report(summary, parsed.color_legend)


if __name__ == "__main__":
    sys.exit(main())
