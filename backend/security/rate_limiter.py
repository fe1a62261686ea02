"""
Sliding-Window Rate Limiter

Admission control per client key. Each key keeps the timestamps of its
admitted requests inside a BoundedLRUMap, so the number of tracked clients
stays capped no matter how many distinct keys arrive.

Two instances run side by side:
- broad: every request (300 per 15 minutes)
- narrow: the external profile fetch only (3 per 24 hours), skipped on cache hits
"""

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional

from cache.lru_map import BoundedLRUMap
from core.errors import RateLimited

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int = 0


class RateLimiter:
    """
    Per-key sliding window limiter
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        name: str = "global",
        capacity: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: BoundedLRUMap[str, Deque[float]] = BoundedLRUMap(capacity)

    def _prune(self, timestamps: Deque[float], now: float) -> None:
        window_start = now - self.window_seconds
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

    def check_and_record(self, key: str) -> RateLimitDecision:
        """
        Admit or reject one request for key

        Admitted requests are recorded; rejected ones are not.
        """
        now = self._clock()
        timestamps = self._windows.get(key)
        if timestamps is None:
            timestamps = deque()
            self._windows.set(key, timestamps)

        self._prune(timestamps, now)

        if len(timestamps) >= self.max_requests:
            retry_after = max(1, math.ceil(timestamps[0] + self.window_seconds - now))
            logger.warning(f"[RateLimit] {self.name}: {key} blocked, retry in {retry_after}s")
            return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

        timestamps.append(now)
        return RateLimitDecision(allowed=True)

    def enforce(self, key: str, message: Optional[str] = None) -> None:
        """check_and_record, raising RateLimited on rejection"""
        decision = self.check_and_record(key)
        if not decision.allowed:
            raise RateLimited(decision.retry_after_seconds, message)

    def sweep(self) -> int:
        """
        Drop expired timestamps for every key and forget empty keys

        Returns:
            Number of keys removed
        """
        now = self._clock()
        removed = 0
        for key, timestamps in self._windows.items():
            self._prune(timestamps, now)
            if not timestamps:
                self._windows.delete(key)
                removed += 1
        return removed

    def reset(self, key: str) -> None:
        self._windows.delete(key)

    def __len__(self) -> int:
        return len(self._windows)

    def stats(self) -> dict:
        return {
            "name": self.name,
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            **self._windows.stats(),
        }
