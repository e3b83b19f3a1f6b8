from __future__ import annotations

import math
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable


class RateLimitExceeded(Exception):
    def __init__(self, retry_after: float):
        super().__init__("Too many requests, please try again later.")
        self.retry_after = retry_after

    @property
    def retry_after_seconds(self) -> int:
        return max(1, math.ceil(self.retry_after))


@dataclass
class RateBucket:
    """Fixed window counter for one client."""

    count: int = 0
    window_start: float | None = None

    def expired(self, window: float, now: float) -> bool:
        return self.window_start is None or now - self.window_start >= window

    def check(self, limit: int, window: float, now: float) -> float | None:
        """Count one hit; return None if allowed, else seconds until reset."""
        if self.expired(window, now):
            self.count = 0
            self.window_start = now
        if self.count >= limit:
            return self.window_start + window - now
        self.count += 1
        return None


class RateLimiter:
    def __init__(
        self,
        *,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._buckets: dict[str, RateBucket] = defaultdict(RateBucket)
        self._last_sweep: float | None = None
        self._lock = threading.Lock()

    @property
    def tracked_clients(self) -> int:
        return len(self._buckets)

    def hit(self, key: str) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            retry_after = self._buckets[key].check(
                self._max_requests, self._window_seconds, now
            )
        if retry_after is not None:
            raise RateLimitExceeded(retry_after)

    def _sweep(self, now: float) -> None:
        # At most once per window; callers hold the lock.
        if self._last_sweep is not None and now - self._last_sweep < self._window_seconds:
            return
        self._last_sweep = now
        stale = [
            key
            for key, bucket in self._buckets.items()
            if bucket.expired(self._window_seconds, now)
        ]
        for key in stale:
            del self._buckets[key]

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._last_sweep = None
