"""
Repository over the authoritative store.

Everything that decides whether a code, email or wallet may be used goes
through a ReservationUnitOfWork opened by ReservationStore.transaction(). The
unit of work runs in one database transaction: identity locks are taken
first, the invite row is locked when read, and the registration and usage
counter commit together or not at all.
"""

import hashlib
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from sqlalchemy import exists, func, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from invite_gate.models import CodeUsage, InviteCode, Registration
from invite_gate.schemas.registration import RegistrationType

logger = logging.getLogger(__name__)


def advisory_lock_id(key: str) -> int:
    """Map a lock key onto the signed 64-bit space of pg_advisory_xact_lock."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class ReservationUnitOfWork:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_invite(self, code: str) -> Optional[InviteCode]:
        """Read the invite row and hold its write lock until the transaction ends."""
        stmt = select(InviteCode).where(InviteCode.code == code).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def email_used(self, email: str) -> bool:
        stmt = select(
            or_(
                exists().where(Registration.email == email),
                exists().where(CodeUsage.user_email == email)
            )
        )
        return bool((await self.session.execute(stmt)).scalar())

    async def wallet_used(self, wallet_address: str) -> bool:
        stmt = select(exists().where(Registration.wallet_address == wallet_address))
        return bool((await self.session.execute(stmt)).scalar())

    async def save_code_reservation(
        self,
        invite: InviteCode,
        email: str,
        wallet_address: str,
        signature: str,
        ip_address: Optional[str] = None,
        device_info: Optional[Dict[str, Any]] = None
    ) -> Registration:
        registration = Registration(
            email=email,
            wallet_address=wallet_address,
            invite_code=invite.code,
            signature=signature,
            registration_type=RegistrationType.INVITE_CODE
        )
        usage = CodeUsage(
            user_email=email,
            invite_code_id=invite.id,
            ip_address=ip_address,
            device_info=device_info
        )
        invite.current_uses += 1
        self.session.add_all([registration, usage])
        await self.session.flush()
        return registration

    async def save_nft_reservation(
        self,
        email: str,
        wallet_address: str,
        token_id: int,
        signature: str
    ) -> Registration:
        registration = Registration(
            email=email,
            wallet_address=wallet_address,
            invite_code="",
            signature=signature,
            registration_type=RegistrationType.NFT,
            token_id=token_id
        )
        self.session.add(registration)
        await self.session.flush()
        return registration


class ReservationStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self, lock_keys: Iterable[str] = ()) -> AsyncIterator[ReservationUnitOfWork]:
        """
        Open a transaction serialized on the given identity keys.

        Keys are locked in sorted order so two transactions sharing keys can
        not deadlock. Locks are released on commit or rollback.
        """
        async with self.session_factory() as session:
            async with session.begin():
                await self._acquire_identity_locks(session, lock_keys)
                yield ReservationUnitOfWork(session)

    async def _acquire_identity_locks(self, session: AsyncSession, lock_keys: Iterable[str]):
        # Without advisory locks the unique constraints still reject duplicates
        if session.bind.dialect.name != "postgresql":
            return
        for key in sorted(set(lock_keys)):
            await session.execute(select(func.pg_advisory_xact_lock(advisory_lock_id(key))))

    async def find_by_code(self, code: str) -> Optional[InviteCode]:
        async with self.session_factory() as session:
            result = await session.execute(select(InviteCode).where(InviteCode.code == code))
            return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[Registration]:
        async with self.session_factory() as session:
            result = await session.execute(select(Registration).where(Registration.email == email))
            return result.scalar_one_or_none()

    async def find_by_wallet(self, wallet_address: str) -> Optional[Registration]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Registration).where(Registration.wallet_address == wallet_address)
            )
            return result.scalar_one_or_none()

    async def list_usages(self, invite_code_id: str) -> List[CodeUsage]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CodeUsage)
                .where(CodeUsage.invite_code_id == invite_code_id)
                .order_by(CodeUsage.used_at, CodeUsage.id)
            )
            return list(result.scalars().all())

    async def create_invite_code(self, code: str, creator_email: str, max_uses: int) -> InviteCode:
        """Insert a new invite. Raises IntegrityError if the code is taken."""
        async with self.session_factory() as session:
            async with session.begin():
                invite = InviteCode(
                    code=code,
                    creator_email=creator_email,
                    max_uses=max_uses,
                    current_uses=0,
                    is_active=True
                )
                session.add(invite)
            await session.refresh(invite)
            return invite

    async def ping(self) -> bool:
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))
        return True
