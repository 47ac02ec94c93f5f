import asyncio
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from eth_account import Account
from eth_account.messages import encode_defunct
from sqlalchemy.exc import IntegrityError, OperationalError

from invite_gate.core.cache import CacheAside, MemoryCacheBackend
from invite_gate.core.rate_limiter import MemoryCounterStore, RateLimiter
from invite_gate.database import Base, create_engine_from_settings, create_session_factory
from invite_gate.models import CodeUsage, InviteCode, Registration
from invite_gate.schemas.eligibility import StakeInfo
from invite_gate.schemas.registration import RegistrationType
from invite_gate.services import (
    EligibilityOracle,
    InviteCodeService,
    ReservationCoordinator,
    SignatureVerifier,
)

DAY = 24 * 60 * 60
NOW = 1_760_000_000


def sign(account, message: str) -> str:
    signed = account.sign_message(encode_defunct(text=message))
    return "0x" + bytes(signed.signature).hex()


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeStakingProvider:
    """Returns a fixed stake per token; can be told to fail or stall."""

    def __init__(self):
        self.stakes_by_token = {}
        self.calls = 0
        self.error = None
        self.delay = 0.0

    def stake(self, token_id: int, is_staked: bool, timestamp: int):
        self.stakes_by_token[token_id] = StakeInfo(is_staked=is_staked, timestamp=timestamp)

    async def stakes(self, token_id: int) -> StakeInfo:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.stakes_by_token.get(token_id, StakeInfo(is_staked=False, timestamp=0))


class InMemoryUnitOfWork:
    def __init__(self, store, held_locks):
        self.store = store
        self.held_locks = held_locks
        self.pending = []

    async def lock_invite(self, code):
        lock = self.store.locks[f"invite:{code}"]
        await lock.acquire()
        self.held_locks.append(lock)
        await asyncio.sleep(0)
        invite = self.store.invites.get(code)
        if invite is None:
            return None
        return InviteCode(
            id=invite.id,
            code=invite.code,
            creator_email=invite.creator_email,
            max_uses=invite.max_uses,
            current_uses=invite.current_uses,
            is_active=invite.is_active
        )

    async def email_used(self, email):
        await asyncio.sleep(0)
        return (
            any(r.email == email for r in self.store.registrations)
            or any(u.user_email == email for u in self.store.usages)
        )

    async def wallet_used(self, wallet_address):
        await asyncio.sleep(0)
        return any(r.wallet_address == wallet_address for r in self.store.registrations)

    async def save_code_reservation(self, invite, email, wallet_address, signature, ip_address=None, device_info=None):
        await asyncio.sleep(0)
        registration = Registration(
            id=str(uuid.uuid4()),
            email=email,
            wallet_address=wallet_address,
            invite_code=invite.code,
            signature=signature,
            registration_type=RegistrationType.INVITE_CODE
        )
        usage = CodeUsage(
            id=str(uuid.uuid4()),
            user_email=email,
            invite_code_id=invite.id,
            ip_address=ip_address,
            device_info=device_info
        )
        invite.current_uses += 1
        if self.store.fail_on_save:
            raise OperationalError("INSERT INTO registrations", {}, Exception("connection lost"))
        self.pending.append((invite, registration, usage))
        return registration

    async def save_nft_reservation(self, email, wallet_address, token_id, signature):
        await asyncio.sleep(0)
        registration = Registration(
            id=str(uuid.uuid4()),
            email=email,
            wallet_address=wallet_address,
            invite_code="",
            signature=signature,
            registration_type=RegistrationType.NFT,
            token_id=token_id
        )
        self.pending.append((None, registration, None))
        return registration

    def commit(self):
        emails = {r.email for r in self.store.registrations}
        wallets = {r.wallet_address for r in self.store.registrations}
        for _, registration, _ in self.pending:
            if registration.email in emails or registration.wallet_address in wallets:
                raise IntegrityError("INSERT INTO registrations", {}, Exception("UNIQUE constraint failed"))
            emails.add(registration.email)
            wallets.add(registration.wallet_address)
        for invite, registration, usage in self.pending:
            self.store.registrations.append(registration)
            if usage is not None:
                self.store.usages.append(usage)
            if invite is not None:
                self.store.invites[invite.code].current_uses = invite.current_uses


class InMemoryReservationStore:
    """
    Store double with the same transaction contract as ReservationStore.

    Every read and write yields to the event loop so concurrent reservations
    interleave. Set honor_identity_locks=False to mimic a database without
    advisory locks, where only the unique constraints at commit catch races.
    """

    def __init__(self, honor_identity_locks: bool = True):
        self.invites = {}
        self.registrations = []
        self.usages = []
        self.locks = defaultdict(asyncio.Lock)
        self.honor_identity_locks = honor_identity_locks
        self.fail_on_save = False

    def add_invite(self, code: str, max_uses: int, current_uses: int = 0, is_active: bool = True) -> InviteCode:
        invite = InviteCode(
            id=str(uuid.uuid4()),
            code=code,
            creator_email="creator@example.com",
            max_uses=max_uses,
            current_uses=current_uses,
            is_active=is_active
        )
        self.invites[code] = invite
        return invite

    @asynccontextmanager
    async def transaction(self, lock_keys=()):
        held_locks = []
        uow = InMemoryUnitOfWork(self, held_locks)
        try:
            if self.honor_identity_locks:
                for key in sorted(set(lock_keys)):
                    lock = self.locks[key]
                    await lock.acquire()
                    held_locks.append(lock)
            yield uow
            await asyncio.sleep(0)
            uow.commit()
        finally:
            for lock in reversed(held_locks):
                lock.release()

    async def find_by_code(self, code):
        await asyncio.sleep(0)
        return self.invites.get(code)

    async def find_by_email(self, email):
        return next((r for r in self.registrations if r.email == email), None)

    async def find_by_wallet(self, wallet_address):
        return next((r for r in self.registrations if r.wallet_address == wallet_address), None)

    async def list_usages(self, invite_code_id):
        return [u for u in self.usages if u.invite_code_id == invite_code_id]

    async def create_invite_code(self, code, creator_email, max_uses):
        if code in self.invites:
            raise IntegrityError("INSERT INTO invite_codes", {}, Exception("UNIQUE constraint failed"))
        invite = self.add_invite(code, max_uses)
        invite.creator_email = creator_email
        return invite


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def staking_provider():
    return FakeStakingProvider()


@pytest.fixture
def memory_store():
    return InMemoryReservationStore()


@pytest.fixture
def cache():
    return CacheAside(MemoryCacheBackend())


@pytest.fixture
def counter_store():
    return MemoryCounterStore()


@pytest.fixture
def oracle(staking_provider, cache, clock):
    return EligibilityOracle(staking_provider, cache, timeout=0.5, clock=clock)


def build_coordinator(store, cache, counter_store, oracle):
    return ReservationCoordinator(
        store,
        cache,
        code_limiter=RateLimiter(counter_store, "invite_reserve"),
        nft_limiter=RateLimiter(counter_store, "register_nft"),
        signature_verifier=SignatureVerifier(),
        eligibility_oracle=oracle
    )


@pytest.fixture
def coordinator(memory_store, cache, counter_store, oracle):
    return build_coordinator(memory_store, cache, counter_store, oracle)


@pytest.fixture
def invite_service(memory_store, cache, counter_store):
    return InviteCodeService(memory_store, cache, RateLimiter(counter_store, "invite_create"))


@pytest.fixture(scope="session")
def accounts():
    return [Account.create() for _ in range(12)]


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path):
    engine = create_engine_from_settings(f"sqlite+aiosqlite:///{tmp_path / 'invite_gate.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return create_session_factory(sqlite_engine)


@pytest.fixture
def staked_long_ago():
    """Timestamp of a stake that already satisfies the seven day requirement."""
    return int(time.time()) - 8 * DAY
