import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from invite_gate.core.rate_limiter import MemoryCounterStore, RateLimiter, RedisCounterStore
from tests.conftest import FakeClock


@pytest.mark.asyncio
async def test_sixth_attempt_in_window_is_denied():
    limiter = RateLimiter(MemoryCounterStore(timer=FakeClock()), "invite_reserve")

    results = [await limiter.consume("alice@example.com") for _ in range(6)]

    assert results == [True, True, True, True, True, False]


@pytest.mark.asyncio
async def test_window_reset_allows_again():
    clock = FakeClock()
    limiter = RateLimiter(MemoryCounterStore(timer=clock), "invite_reserve")
    for _ in range(6):
        await limiter.consume("alice@example.com")

    clock.advance(61)

    assert await limiter.consume("alice@example.com") is True


@pytest.mark.asyncio
async def test_keys_and_prefixes_are_counted_separately():
    store = MemoryCounterStore(timer=FakeClock())
    reserve = RateLimiter(store, "invite_reserve")
    nft = RateLimiter(store, "register_nft")
    for _ in range(5):
        assert await reserve.consume("alice@example.com")

    assert await reserve.consume("alice@example.com") is False
    assert await reserve.consume("bob@example.com") is True
    assert await nft.consume("alice@example.com") is True


@pytest.mark.asyncio
async def test_redis_counter_opens_window_with_expiry():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    limiter = RateLimiter(RedisCounterStore(client), "invite_reserve", points=5, duration=60)

    results = [await limiter.consume("0xabc") for _ in range(6)]

    assert results == [True] * 5 + [False]
    assert await client.get("invite_reserve:0xabc") == "6"
    assert 0 < await client.ttl("invite_reserve:0xabc") <= 60
    await client.aclose()


class BrokenCounterStore:
    async def increment(self, key, window_seconds):
        raise RedisConnectionError("redis is down")


@pytest.mark.asyncio
async def test_counter_store_failure_propagates():
    limiter = RateLimiter(BrokenCounterStore(), "invite_reserve")

    with pytest.raises(RedisConnectionError):
        await limiter.consume("alice@example.com")


@pytest.mark.asyncio
async def test_memory_counters_past_maxsize_evict_open_windows():
    limiter = RateLimiter(MemoryCounterStore(maxsize=1, timer=FakeClock()), "invite_reserve", points=1)

    assert await limiter.consume("alice@example.com") is True
    assert await limiter.consume("alice@example.com") is False
    assert await limiter.consume("bob@example.com") is True

    assert await limiter.consume("alice@example.com") is True
