"""
Custom exception hierarchy for the school pipeline.

Geocoding failures are tagged with a GeocodingErrorCode so callers can tell
a flaky network apart from an address the provider simply does not know.
None of these escape the validation engine: they are converted into
ValidationIssue objects at the record boundary.
"""

from __future__ import annotations

from .models import GeocodingErrorCode


class SchoolPipelineError(Exception):
    """Base exception for all school pipeline failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class GeocodingError(SchoolPipelineError):
    """An address could not be resolved to coordinates."""

    error_code: GeocodingErrorCode = GeocodingErrorCode.INVALID_ADDRESS

    def __init__(self, message: str, address: str = "", details: dict | None = None):
        self.address = address
        super().__init__(self.error_code.value, message, details)


class NetworkError(GeocodingError):
    """The provider could not be reached (connection, DNS, timeout)."""

    error_code = GeocodingErrorCode.NETWORK_ERROR


class RateLimitedError(GeocodingError):
    """The provider refused the request because we are calling too often."""

    error_code = GeocodingErrorCode.RATE_LIMIT


class NoResultsError(GeocodingError):
    """The provider answered, but with no candidates for the address."""

    error_code = GeocodingErrorCode.NO_RESULTS


class InvalidAddressError(GeocodingError):
    """Anything else: bad status, unparseable payload, blank address."""

    error_code = GeocodingErrorCode.INVALID_ADDRESS
