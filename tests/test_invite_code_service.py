import asyncio

import pytest

from invite_gate.core.rate_limiter import RateLimiter
from invite_gate.core.results import ReservationError
from invite_gate.models import InviteCode
from invite_gate.services import InviteCodeService, code_registration_message
from tests.conftest import InMemoryReservationStore, build_coordinator, sign


@pytest.mark.asyncio
async def test_create_invite_code_generates_unique_code(invite_service, memory_store):
    result = await invite_service.create_invite_code("Creator@Example.com", 5)

    invite = result.value
    assert len(invite.code) == 8
    assert invite.code.isalnum() and invite.code == invite.code.upper()
    assert invite.creator_email == "creator@example.com"
    assert invite.max_uses == 5
    assert invite.current_uses == 0
    assert memory_store.invites[invite.code] is invite


@pytest.mark.asyncio
async def test_create_invite_code_retries_on_collision(invite_service, memory_store, monkeypatch):
    memory_store.add_invite("TAKEN000", max_uses=1)
    drawn = iter(["TAKEN000", "FRESH111"])
    monkeypatch.setattr(
        "invite_gate.services.invite_code_service.generate_invite_code", lambda: next(drawn)
    )

    result = await invite_service.create_invite_code("creator@example.com", 1)

    assert result.value.code == "FRESH111"


@pytest.mark.asyncio
@pytest.mark.parametrize("max_uses", [0, 101])
async def test_create_invite_code_bounds(invite_service, memory_store, max_uses):
    result = await invite_service.create_invite_code("creator@example.com", max_uses)

    assert result.error == ReservationError.INVALID_REQUEST
    assert not result.error.retryable
    assert memory_store.invites == {}


@pytest.mark.asyncio
async def test_create_invite_code_is_rate_limited(invite_service):
    for _ in range(5):
        assert (await invite_service.create_invite_code("creator@example.com", 1)).ok

    result = await invite_service.create_invite_code("creator@example.com", 1)

    assert result.error == ReservationError.RATE_LIMITED
    assert result.detail == "Too many code generation attempts"


@pytest.mark.asyncio
async def test_verify_invite_code(invite_service, memory_store):
    memory_store.add_invite("GOOD0000", max_uses=2, current_uses=1)
    memory_store.add_invite("FULL0000", max_uses=2, current_uses=2)
    memory_store.add_invite("OFF00000", max_uses=2, is_active=False)

    assert (await invite_service.verify_invite_code("GOOD0000")).value is True
    assert (await invite_service.verify_invite_code("FULL0000")).value is False
    assert (await invite_service.verify_invite_code("OFF00000")).value is False
    assert (await invite_service.verify_invite_code("MISSING0")).value is False


@pytest.mark.asyncio
async def test_verify_is_stable_until_a_reservation_changes_the_code(invite_service, coordinator, memory_store, cache, accounts):
    memory_store.add_invite("GOOD0000", max_uses=1)

    first = await invite_service.verify_invite_code("GOOD0000")
    second = await invite_service.verify_invite_code("GOOD0000")

    assert first.value is second.value is memory_store.invites["GOOD0000"].is_redeemable is True
    assert await cache.lookup("invite:GOOD0000") == {"isValid": True, "currentUses": 0, "maxUses": 1}

    account = accounts[0]
    await coordinator.reserve_by_code(
        "GOOD0000", "a@example.com", account.address, sign(account, code_registration_message("GOOD0000"))
    )

    assert (await invite_service.verify_invite_code("GOOD0000")).value is False


@pytest.mark.asyncio
async def test_identity_lookups_reflect_reservations(invite_service, coordinator, memory_store, accounts):
    memory_store.add_invite("ABCD1234", max_uses=2)
    account = accounts[0]

    assert (await invite_service.is_email_used("a@example.com")).value is False
    assert (await invite_service.is_wallet_used(account.address)).value is False

    await coordinator.reserve_by_code(
        "ABCD1234", "a@example.com", account.address, sign(account, code_registration_message("ABCD1234"))
    )

    assert (await invite_service.is_email_used("A@Example.com")).value is True
    assert (await invite_service.is_wallet_used(account.address)).value is True
    assert (await invite_service.verify_invite_code("ABCD1234")).value is True


@pytest.mark.asyncio
async def test_stats_for_unknown_code(invite_service):
    result = await invite_service.get_invite_code_stats("MISSING0")

    assert result.error == ReservationError.NOT_FOUND
    assert result.detail == "Invalid invite code"


@pytest.mark.asyncio
async def test_stats_are_read_from_the_store(memory_store, cache, counter_store):
    service = InviteCodeService(memory_store, cache, RateLimiter(counter_store, "invite_create"))
    memory_store.add_invite("ABCD1234", max_uses=4, current_uses=3)
    await cache.store("invite:ABCD1234", {"isValid": True, "currentUses": 0, "maxUses": 4})

    stats = (await service.get_invite_code_stats("ABCD1234")).value

    assert stats.usage_count == 3
    assert stats.remaining_uses == 1
    assert stats.usages == []


class SlowReadStore(InMemoryReservationStore):
    """Holds find_by_code between reading the row and returning it."""

    def __init__(self):
        super().__init__()
        self.read_done = asyncio.Event()
        self.resume = asyncio.Event()

    async def find_by_code(self, code):
        live = await super().find_by_code(code)
        snapshot = InviteCode(
            id=live.id,
            code=live.code,
            creator_email=live.creator_email,
            max_uses=live.max_uses,
            current_uses=live.current_uses,
            is_active=live.is_active
        )
        self.read_done.set()
        await self.resume.wait()
        return snapshot


@pytest.mark.asyncio
async def test_verify_read_before_a_reservation_does_not_overwrite_its_cache_entry(cache, counter_store, oracle, accounts):
    store = SlowReadStore()
    store.add_invite("ABCD1234", max_uses=1)
    service = InviteCodeService(store, cache, RateLimiter(counter_store, "invite_create"))
    coordinator = build_coordinator(store, cache, counter_store, oracle)
    account = accounts[0]

    pending = asyncio.create_task(service.verify_invite_code("ABCD1234"))
    await store.read_done.wait()
    reserved = await coordinator.reserve_by_code(
        "ABCD1234", "a@example.com", account.address, sign(account, code_registration_message("ABCD1234"))
    )
    store.resume.set()

    assert reserved.ok
    assert (await pending).value is True
    assert store.invites["ABCD1234"].is_redeemable is False
    assert (await service.verify_invite_code("ABCD1234")).value is False
    assert await cache.lookup("invite:ABCD1234") == {"isValid": False, "currentUses": 1, "maxUses": 1}


@pytest.mark.asyncio
async def test_email_lookup_does_not_overwrite_reservation_entry(invite_service, coordinator, memory_store, cache, accounts):
    memory_store.add_invite("ABCD1234", max_uses=1)
    account = accounts[0]
    await coordinator.reserve_by_code(
        "ABCD1234", "a@example.com", account.address, sign(account, code_registration_message("ABCD1234"))
    )

    assert await cache.store_if_absent("email:a@example.com", False) is False
    assert (await invite_service.is_email_used("a@example.com")).value is True
