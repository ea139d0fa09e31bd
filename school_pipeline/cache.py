"""
In-memory caches: the bounded geocoding cache and a TTL memo cache.

GeocodingCache
    Normalised address → GeocodingResult, fixed capacity, FIFO eviction by
    insertion order. Recency of access does not matter.

TTLCache
    Key → value with a wall-clock validity window. Used by the query engine
    to memoise filter and search results. Staleness up to the TTL after the
    record set changes is part of the contract; invalidate() is the escape
    hatch for callers that know the data moved.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any, Optional

from .models import GeocodingResult

logger = logging.getLogger(__name__)

DEFAULT_GEOCODING_CACHE_SIZE = 1000

_WHITESPACE = re.compile(r"\s+")


def normalize_address(address: str) -> str:
    """'  Test   Address  ' and 'TEST ADDRESS' share the key 'test address'."""
    return _WHITESPACE.sub(" ", address.strip().lower())


# ─── Geocoding Cache ────────────────────────────────────────────────


class GeocodingCache:
    """Bounded store of successful geocoding results."""

    def __init__(self, max_size: int = DEFAULT_GEOCODING_CACHE_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self._entries: OrderedDict[str, GeocodingResult] = OrderedDict()

    def get(self, address: str) -> Optional[GeocodingResult]:
        return self._entries.get(normalize_address(address))

    def set(self, address: str, result: GeocodingResult) -> None:
        key = normalize_address(address)
        if key not in self._entries and len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Geocoding cache full, evicted %r", evicted)
        self._entries[key] = result

    def has(self, address: str) -> bool:
        return normalize_address(address) in self._entries

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int]:
        return {"size": len(self._entries), "max_size": self.max_size}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and self.has(address)


# ─── TTL Cache ──────────────────────────────────────────────────────


class TTLCache:
    """Memo cache whose entries expire ttl seconds after being stored.

    A lock guards the entry map, so one instance can be shared between
    worker threads.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        if ttl < 0:
            raise ValueError("ttl must be >= 0")
        self.ttl = float(ttl)
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl:
                self._entries.pop(key, None)
                return None
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._purge_expired()
            self._entries[key] = (self._clock(), value)

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired(self) -> None:
        # Caller holds the lock
        now = self._clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl]
        for key in expired:
            self._entries.pop(key, None)
