"""Minimum spacing between outbound routing requests."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)


class RateLimiter:
    """Single gate shared by every caller that talks to the routing API.

    Waiters queue on one lock, so concurrent requests are delayed in arrival
    order and never dropped.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must not be negative")
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request: float | None = None

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def acquire(self) -> None:
        """Wait until a request may be sent, then claim the slot."""
        async with self._lock:
            if self._last_request is not None:
                wait = self._last_request + self._min_interval - self._clock()
                if wait > 0:
                    _logger.debug("Rate limiting routing request for %.3fs", wait)
                    await self._sleep(wait)
            self._last_request = self._clock()
