"""
Address → coordinates resolution.

    NominatimGeocoder   rate-limited HTTP client for the OpenStreetMap
                        Nominatim search API (UK only, one candidate).
    CachedGeocoder      wraps any Geocoder with a GeocodingCache; only
                        successes are cached, so failures are retried.
    DisabledGeocoder    fails every lookup; keeps offline runs offline.

resolve() raises a tagged GeocodingError. resolve_batch() never raises: every
address gets its own result or error.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

import httpx

from .cache import GeocodingCache
from .config import NOMINATIM_SEARCH_URL, Settings
from .exceptions import (
    GeocodingError,
    InvalidAddressError,
    NetworkError,
    NoResultsError,
    RateLimitedError,
)
from .models import Coordinates, GeocodingResult
from .throttling import MinIntervalRateLimiter

logger = logging.getLogger(__name__)

BatchOutcome = Union[GeocodingResult, GeocodingError]

EARTH_RADIUS_KM = 6371.0


# ─── Coordinate Helpers ─────────────────────────────────────────────


def is_valid_coordinates(coords: Optional[Coordinates]) -> bool:
    """True for finite numbers with lat in [-90, 90] and lng in [-180, 180]."""
    if coords is None:
        return False
    lat, lng = coords.lat, coords.lng
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return False
    if math.isnan(lat) or math.isnan(lng):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def calculate_distance(a: Coordinates, b: Coordinates) -> float:
    """Great-circle (haversine) distance in kilometres.

    Not used by the pipeline itself; map and comparison consumers use it
    to measure between validated records.
    """
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def calculate_confidence(candidate: dict[str, Any]) -> float:
    """Score a provider candidate in [0, 1].

    Base 0.5, +0.3 for a school amenity, + importance × 0.2, then +0.2 for an
    amenity-level address or +0.1 for a house-level one.
    """
    confidence = 0.5

    if candidate.get("class") == "amenity" and candidate.get("type") == "school":
        confidence += 0.3

    try:
        importance = float(candidate.get("importance") or 0)
    except (TypeError, ValueError):
        importance = 0.0
    confidence += importance * 0.2

    address_type = candidate.get("addresstype")
    if address_type == "amenity":
        confidence += 0.2
    elif address_type == "house":
        confidence += 0.1

    return max(0.0, min(confidence, 1.0))


# ─── Geocoder Interface ─────────────────────────────────────────────


class Geocoder(ABC):
    """Resolves one free-text address to coordinates."""

    @abstractmethod
    async def resolve(self, address: str) -> GeocodingResult:
        """Resolve an address or raise a GeocodingError subclass."""

    async def resolve_batch(self, addresses: list[str]) -> dict[str, BatchOutcome]:
        """Resolve addresses one after another, recording each outcome.

        A failure for one address never stops the rest.
        """
        outcomes: dict[str, BatchOutcome] = {}
        for address in addresses:
            try:
                outcomes[address] = await self.resolve(address)
            except GeocodingError as exc:
                logger.warning("Geocoding failed for %r: %s", address, exc)
                outcomes[address] = exc
        return outcomes


# ─── Nominatim ──────────────────────────────────────────────────────


class NominatimGeocoder(Geocoder):
    """OpenStreetMap Nominatim search, one request per min_interval."""

    def __init__(
        self,
        base_url: str = NOMINATIM_SEARCH_URL,
        user_agent: str = "SchoolMapApp/1.0",
        country_codes: str = "gb",
        timeout: float = 15.0,
        rate_limiter: Optional[MinIntervalRateLimiter] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self.user_agent = user_agent
        self.country_codes = country_codes
        self.timeout = timeout
        self.rate_limiter = rate_limiter or MinIntervalRateLimiter(1.0)
        self._client = client

    @classmethod
    def from_settings(
        cls, settings: Settings, client: Optional[httpx.AsyncClient] = None
    ) -> "NominatimGeocoder":
        return cls(
            base_url=settings.geocoder_url,
            user_agent=settings.geocoder_user_agent,
            country_codes=settings.geocoder_country,
            timeout=settings.geocoder_timeout,
            rate_limiter=MinIntervalRateLimiter(settings.geocoder_min_interval),
            client=client,
        )

    async def resolve(self, address: str) -> GeocodingResult:
        if not address or not address.strip():
            raise InvalidAddressError("Cannot geocode an empty address", address=address)

        await self.rate_limiter.wait()

        params = {
            "q": address,
            "format": "json",
            "limit": "1",
            "countrycodes": self.country_codes,
            "addressdetails": "1",
            "extratags": "1",
        }
        try:
            response = await self._get(params)
        except httpx.TransportError as exc:
            raise NetworkError(
                f"Network error while geocoding address: {address} - {exc}",
                address=address,
            ) from exc

        if response.status_code == 429:
            raise RateLimitedError(
                f"Rate limit exceeded for address: {address}",
                address=address,
                details={"status_code": 429},
            )
        if response.is_error:
            raise InvalidAddressError(
                f"Invalid address or geocoding error: {address} - HTTP {response.status_code}",
                address=address,
                details={"status_code": response.status_code},
            )

        try:
            candidates = response.json()
        except ValueError as exc:
            raise InvalidAddressError(
                f"Invalid address or geocoding error: {address} - unreadable response",
                address=address,
            ) from exc

        if not candidates:
            raise NoResultsError(
                f"No geocoding results found for address: {address}", address=address
            )
        if not isinstance(candidates, list):
            raise InvalidAddressError(
                f"Invalid address or geocoding error: {address} - unexpected payload",
                address=address,
            )

        return self._to_result(candidates[0], address)

    async def _get(self, params: dict[str, str]) -> httpx.Response:
        headers = {"User-Agent": self.user_agent}
        if self._client is not None:
            return await self._client.get(self.base_url, params=params, headers=headers)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(self.base_url, params=params, headers=headers)

    @staticmethod
    def _to_result(candidate: Any, address: str) -> GeocodingResult:
        try:
            coordinates = Coordinates(lat=float(candidate["lat"]), lng=float(candidate["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidAddressError(
                f"Invalid address or geocoding error: {address} - malformed candidate",
                address=address,
            ) from exc

        return GeocodingResult(
            coordinates=coordinates,
            formatted_address=candidate.get("display_name"),
            confidence=calculate_confidence(candidate),
        )


# ─── Caching Wrapper ────────────────────────────────────────────────


class CachedGeocoder(Geocoder):
    """Checks a GeocodingCache before delegating to the wrapped geocoder."""

    def __init__(self, geocoder: Geocoder, cache: Optional[GeocodingCache] = None):
        self.geocoder = geocoder
        self.cache = cache if cache is not None else GeocodingCache()

    async def resolve(self, address: str) -> GeocodingResult:
        cached = self.cache.get(address)
        if cached is not None:
            logger.debug("Geocoding cache hit for %r", address)
            return cached

        logger.debug("Geocoding cache miss for %r", address)
        result = await self.geocoder.resolve(address)
        self.cache.set(address, result)
        return result

    async def resolve_batch(self, addresses: list[str]) -> dict[str, BatchOutcome]:
        outcomes: dict[str, BatchOutcome] = {}
        uncached: list[str] = []

        for address in addresses:
            cached = self.cache.get(address)
            if cached is not None:
                outcomes[address] = cached
            else:
                uncached.append(address)

        if uncached:
            for address, outcome in (await self.geocoder.resolve_batch(uncached)).items():
                outcomes[address] = outcome
                if isinstance(outcome, GeocodingResult):
                    self.cache.set(address, outcome)

        return outcomes

    def cache_stats(self) -> dict[str, int]:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()


class DisabledGeocoder(Geocoder):
    async def resolve(self, address: str) -> GeocodingResult:
        raise InvalidAddressError("Geocoding is disabled for this run", address=address)


def build_geocoder(settings: Settings) -> CachedGeocoder:
    """The production composition: Nominatim behind a bounded cache."""
    return CachedGeocoder(
        NominatimGeocoder.from_settings(settings),
        GeocodingCache(settings.geocoder_cache_size),
    )
