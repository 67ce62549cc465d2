"""
Sliding-window rate limiter shared by all upstream clients.

Each source name gets its own window of recent call timestamps. Callers await
``wait_if_needed`` before every outgoing request; it sleeps only as long as
needed to keep at most ``limit_per_second`` calls inside any trailing window.
"""

import asyncio
import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable

from trial_navigator.constants import RATE_LIMIT_WINDOW_SECONDS

logger = logging.getLogger(__name__)

# Tolerance for float drift when comparing timestamps to the window edge.
_EPSILON = 1e-9


class SlidingWindowRateLimiter:
    """Async per-source sliding-window limiter."""

    def __init__(
        self,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window = window_seconds
        self._clock = clock
        self._calls: dict[str, deque[float]] = defaultdict(deque)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _prune(self, calls: deque[float], now: float) -> None:
        while calls and now - calls[0] >= self.window - _EPSILON:
            calls.popleft()

    async def wait_if_needed(self, source_name: str, limit_per_second: int) -> float:
        """Block until a call to ``source_name`` is allowed, then record it.

        Returns the number of seconds spent waiting.
        """
        if limit_per_second < 1:
            raise ValueError("limit_per_second must be at least 1")

        waited = 0.0
        async with self._locks[source_name]:
            calls = self._calls[source_name]
            now = self._clock()
            self._prune(calls, now)

            while len(calls) >= limit_per_second:
                # The call that must leave the window before we may proceed.
                blocking = calls[len(calls) - limit_per_second]
                delay = self.window - (now - blocking)
                if delay > 0:
                    logger.debug(
                        "Rate limiter [%s]: sleeping %.3fs", source_name, delay
                    )
                    await asyncio.sleep(delay)
                    waited += delay
                now = self._clock()
                self._prune(calls, now)

            calls.append(now)
        return waited

    def recent_calls(self, source_name: str) -> int:
        """Number of calls to ``source_name`` inside the current window."""
        calls = self._calls.get(source_name)
        if not calls:
            return 0
        self._prune(calls, self._clock())
        return len(calls)
