"""
Cache-aside layer over a TTL key-value store.

Entries are a derived view of the database and may be stale or missing at any
time. Nothing that mutates state may trust them; backend failures are logged
and reported as a miss.
"""

import json
import logging
import time
from typing import Any, Optional

from cachetools import TLRUCache
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisCacheBackend:
    def __init__(self, client):
        self.client = client

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl: int):
        await self.client.set(key, value, ex=ttl)

    async def add(self, key: str, value: str, ttl: int) -> bool:
        return bool(await self.client.set(key, value, ex=ttl, nx=True))

    async def delete(self, key: str):
        await self.client.delete(key)


def _entry_expiry(_key, entry, now):
    return now + entry[1]


class MemoryCacheBackend:
    """Per-process backend for development and single-worker deployments."""

    def __init__(self, maxsize: int = 10000, timer=time.monotonic):
        self._entries = TLRUCache(maxsize=maxsize, ttu=_entry_expiry, timer=timer)

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        return entry[0] if entry is not None else None

    async def set(self, key: str, value: str, ttl: int):
        self._entries[key] = (value, ttl)

    async def add(self, key: str, value: str, ttl: int) -> bool:
        if self._entries.get(key) is not None:
            return False
        self._entries[key] = (value, ttl)
        return True

    async def delete(self, key: str):
        self._entries.pop(key, None)


class CacheAside:
    INVITE_PREFIX = "invite:"
    EMAIL_PREFIX = "email:"
    WALLET_PREFIX = "wallet:"
    TOKEN_PREFIX = "token:"

    def __init__(self, backend, registration_ttl: int = 3600, eligibility_ttl: int = 300):
        self.backend = backend
        self.registration_ttl = registration_ttl
        self.eligibility_ttl = eligibility_ttl

    @classmethod
    def invite_key(cls, code: str) -> str:
        return f"{cls.INVITE_PREFIX}{code}"

    @classmethod
    def email_key(cls, email: str) -> str:
        return f"{cls.EMAIL_PREFIX}{email}"

    @classmethod
    def wallet_key(cls, wallet_address: str) -> str:
        return f"{cls.WALLET_PREFIX}{wallet_address}"

    @classmethod
    def eligibility_key(cls, token_id: int, wallet_address: str) -> str:
        return f"{cls.TOKEN_PREFIX}{token_id}:{wallet_address}"

    async def lookup(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss."""
        try:
            raw = await self.backend.get(key)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache lookup failed for {key}, falling back to the database: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    async def store(self, key: str, value: Any, ttl: Optional[int] = None):
        if ttl is None:
            ttl = self.registration_ttl
        try:
            await self.backend.set(key, json.dumps(value), ttl)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache store failed for {key}: {e}")

    async def store_if_absent(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Populate a miss without overwriting an entry written in the meantime.

        Read paths fill the cache with this so a snapshot read before a
        reservation committed can not replace the entry that reservation wrote.
        """
        if ttl is None:
            ttl = self.registration_ttl
        try:
            return await self.backend.add(key, json.dumps(value), ttl)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache store failed for {key}: {e}")
            return False

    async def invalidate(self, key: str):
        try:
            await self.backend.delete(key)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache invalidation failed for {key}: {e}")
