"""In-memory sliding-window log rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit,
  and a restart resets every counter.
- Not thread-safe: it is only touched from the event loop.
"""

from __future__ import annotations

import math
import time
from collections import deque
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping a log of request timestamps per key.

    A request is allowed when the number of requests recorded within the
    trailing ``window_seconds`` plus its cost stays within ``limit``. Only
    allowed requests are recorded, so a blocked client regains budget as soon
    as its oldest recorded request ages out of the window.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum number of allowed units per window.
            window_seconds: Size of the trailing window in seconds.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._log_by_key: dict[str, deque[float]] = {}
        self._last_sweep: float | None = None

    def _prune(self, timestamps: deque[float], now: float) -> None:
        while timestamps and now - timestamps[0] >= self._window_seconds:
            timestamps.popleft()

    def _sweep(self, now: float) -> None:
        """Forget sources idle for a whole window; runs at most once per window."""
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep < self._window_seconds:
            return

        self._last_sweep = now
        for key in list(self._log_by_key):
            timestamps = self._log_by_key[key]
            self._prune(timestamps, now)
            if not timestamps:
                del self._log_by_key[key]

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Check the trailing window for ``key`` and record the request if allowed.

        Raises:
            ValueError: If key is empty or cost is invalid.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        self._sweep(now)
        timestamps = self._log_by_key.setdefault(key, deque())
        self._prune(timestamps, now)

        if len(timestamps) + cost <= self._limit:
            timestamps.extend([now] * cost)
            reset_at = timestamps[0] + self._window_seconds
            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=self._limit - len(timestamps),
                reset_at=int(math.ceil(reset_at)),
                retry_after_seconds=None,
            )

        oldest = timestamps[0] if timestamps else now
        reset_at = oldest + self._window_seconds
        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=max(0, self._limit - len(timestamps)),
            reset_at=int(math.ceil(reset_at)),
            retry_after_seconds=max(1, int(math.ceil(reset_at - now))),
        )

    def reset(self) -> None:
        self._log_by_key.clear()

    def tracked_keys(self) -> int:
        """Number of sources with a recorded window (pruned lazily)."""
        return len(self._log_by_key)
