"""
Fixed-window rate limiting keyed by identity (email or wallet).

The window opens on the first consumption for a key and the counter expires
with it. Counter store failures propagate to the caller; a limiter that cannot
count never allows.
"""

import logging
import time

from cachetools import TLRUCache

logger = logging.getLogger(__name__)


class RedisCounterStore:
    def __init__(self, client):
        self.client = client

    async def increment(self, key: str, window_seconds: int) -> int:
        # SET NX opens the window only if none is running; both commands run
        # in one MULTI so concurrent callers see a single counter.
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, ex=window_seconds, nx=True)
            pipe.incr(key)
            _, count = await pipe.execute()
        return int(count)


def _window_expiry(_key, window, now):
    return now + window[1]


class MemoryCounterStore:
    """Per-process counters for development and tests."""

    # Past maxsize the least recently used windows are evicted while still open,
    # which resets their counts. Use RedisCounterStore beyond a single dev worker.
    def __init__(self, maxsize: int = 100000, timer=time.monotonic):
        self._windows = TLRUCache(maxsize=maxsize, ttu=_window_expiry, timer=timer)

    async def increment(self, key: str, window_seconds: int) -> int:
        window = self._windows.get(key)
        if window is None:
            window = [0, window_seconds]
            self._windows[key] = window
        window[0] += 1
        return window[0]


class RateLimiter:
    def __init__(self, store, key_prefix: str, points: int = 5, duration: int = 60):
        self.store = store
        self.key_prefix = key_prefix
        self.points = points
        self.duration = duration

    async def consume(self, key: str) -> bool:
        """Spend one point for key. Returns False once the window's quota is gone."""
        count = await self.store.increment(f"{self.key_prefix}:{key}", self.duration)
        if count > self.points:
            logger.warning(f"Rate limit exceeded for {self.key_prefix}:{key} ({count}/{self.points})")
            return False
        return True
