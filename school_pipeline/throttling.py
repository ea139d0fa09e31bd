"""
Cooperative rate limiting for outbound geocoding calls.

Requests are spaced on a single timeline: before each request the caller
awaits until the configured interval has passed since the previous one.
Waiting is an asyncio sleep, never a busy loop, so other validations keep
running while a geocoding call is held back.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Optional

logger = logging.getLogger(__name__)


class MinIntervalRateLimiter:
    """Fixed minimum spacing between consecutive acquisitions.

    The lock serialises access to the last-request timestamp, so concurrent
    callers queue up one interval apart instead of all firing at once.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            min_interval: Seconds that must separate two requests (0 disables).
            clock: Monotonic time source, injectable for tests.
            sleep: Coroutine used to wait, injectable for tests.
        """
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")

        self.min_interval = float(min_interval)
        self._clock = clock
        self._sleep = sleep
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        """Suspend until it is safe to issue the next request."""
        async with self._lock:
            if self._last_request is not None:
                delay = self._last_request + self.min_interval - self._clock()
                if delay > 0:
                    logger.debug("Rate limiter holding request for %.3fs", delay)
                    await self._sleep(delay)
            self._last_request = self._clock()
