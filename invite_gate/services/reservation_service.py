"""
Reservation coordinator.

Both reservation paths follow the same shape:

    rate-limit -> serialize on identity -> re-validate against the database
    -> signature / eligibility check -> persist -> cache sync

The cache is never consulted for a decision here. Every check that gates a
mutation runs against the database inside the store transaction, after the
identity locks (and, for invite codes, the invite row lock) are held.
"""

import logging
from typing import Any, Dict, Optional

from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from invite_gate.core.cache import CacheAside
from invite_gate.core.rate_limiter import RateLimiter
from invite_gate.core.results import ReservationError, Result
from invite_gate.services.eligibility_service import EligibilityOracle
from invite_gate.services.signature_service import (
    SignatureVerifier,
    code_registration_message,
    nft_registration_message,
)
from invite_gate.utils.identity import normalize_email, normalize_wallet

logger = logging.getLogger(__name__)


class _Abort(Exception):
    """Unwinds the store transaction so nothing staged in it commits."""

    def __init__(self, error: ReservationError, detail: Optional[str] = None):
        super().__init__(error.value)
        self.error = error
        self.detail = detail


class ReservationCoordinator:
    def __init__(
        self,
        store,
        cache: CacheAside,
        code_limiter: RateLimiter,
        nft_limiter: RateLimiter,
        signature_verifier: SignatureVerifier,
        eligibility_oracle: EligibilityOracle
    ):
        self.store = store
        self.cache = cache
        self.code_limiter = code_limiter
        self.nft_limiter = nft_limiter
        self.signature_verifier = signature_verifier
        self.eligibility_oracle = eligibility_oracle

    async def reserve_by_code(
        self,
        code: str,
        email: str,
        wallet_address: str,
        signature: str,
        ip_address: Optional[str] = None,
        device_info: Optional[Dict[str, Any]] = None
    ) -> Result[str]:
        """
        Redeem one use of an invite code for an email and wallet.

        Returns:
            Result[str]: the new registration id, or the reason it was refused
        """
        email = normalize_email(email)
        wallet = normalize_wallet(wallet_address)

        limited = await self._consume(self.code_limiter, email)
        if limited is not None:
            return limited

        try:
            async with self.store.transaction(lock_keys=[f"email:{email}", f"wallet:{wallet}"]) as uow:
                invite = await uow.lock_invite(code)
                if invite is None:
                    raise _Abort(ReservationError.INVALID_CODE)
                if not invite.is_active:
                    raise _Abort(ReservationError.CODE_INACTIVE)
                if invite.current_uses >= invite.max_uses:
                    raise _Abort(ReservationError.CODE_EXHAUSTED)

                await self._ensure_identity_unused(uow, email, wallet)

                if not self.signature_verifier.verify(code_registration_message(code), signature, wallet):
                    raise _Abort(ReservationError.INVALID_SIGNATURE)

                registration = await uow.save_code_reservation(
                    invite, email, wallet, signature, ip_address=ip_address, device_info=device_info
                )
                registration_id = registration.id
                invite_snapshot = {
                    "isValid": invite.is_redeemable,
                    "currentUses": invite.current_uses,
                    "maxUses": invite.max_uses,
                }
        except _Abort as abort:
            logger.info(f"Invite reservation refused for {email} on {code}: {abort.error.value}")
            return Result.failure(abort.error, abort.detail)
        except IntegrityError:
            logger.warning(f"Unique constraint rejected invite reservation for {email}")
            return await self._classify_conflict(email, wallet)
        except SQLAlchemyError:
            logger.exception(f"Database error reserving invite code {code}")
            return Result.failure(ReservationError.INTERNAL_ERROR)

        await self._sync_identity_cache(email, wallet)
        await self.cache.store(self.cache.invite_key(code), invite_snapshot)
        logger.info(f"✅ Reserved invite code {code} for {email} (registration {registration_id})")
        return Result.success(registration_id)

    async def reserve_by_nft(
        self,
        email: str,
        wallet_address: str,
        token_id: int,
        signature: str
    ) -> Result[str]:
        """
        Register an email and wallet on proof of a staked NFT.

        Returns:
            Result[str]: the new registration id, or the reason it was refused
        """
        email = normalize_email(email)
        wallet = normalize_wallet(wallet_address)

        limited = await self._consume(self.nft_limiter, wallet)
        if limited is not None:
            return limited

        lock_keys = [f"email:{email}", f"wallet:{wallet}", f"nft:{token_id}:{wallet}"]
        try:
            async with self.store.transaction(lock_keys=lock_keys) as uow:
                if not self.signature_verifier.verify(nft_registration_message(token_id), signature, wallet):
                    raise _Abort(ReservationError.INVALID_SIGNATURE)

                await self._ensure_identity_unused(uow, email, wallet)

                eligibility = await self.eligibility_oracle.check_eligibility(token_id, wallet)
                if not eligibility.ok:
                    raise _Abort(eligibility.error, eligibility.detail)
                if not eligibility.value.is_eligible:
                    raise _Abort(ReservationError.ELIGIBILITY_NOT_MET)

                registration = await uow.save_nft_reservation(email, wallet, token_id, signature)
                registration_id = registration.id
        except _Abort as abort:
            logger.info(f"NFT registration refused for {wallet} token {token_id}: {abort.error.value}")
            return Result.failure(abort.error, abort.detail)
        except IntegrityError:
            logger.warning(f"Unique constraint rejected NFT registration for {wallet}")
            return await self._classify_conflict(email, wallet)
        except SQLAlchemyError:
            logger.exception(f"Database error registering NFT token {token_id}")
            return Result.failure(ReservationError.INTERNAL_ERROR)

        await self._sync_identity_cache(email, wallet)
        logger.info(f"✅ Registered {email} with NFT token {token_id} (registration {registration_id})")
        return Result.success(registration_id)

    async def _consume(self, limiter: RateLimiter, key: str) -> Optional[Result]:
        try:
            allowed = await limiter.consume(key)
        except (RedisError, OSError):
            logger.exception(f"Rate limiter store unavailable for {key}")
            return Result.failure(ReservationError.INTERNAL_ERROR, "Rate limiter unavailable")
        if not allowed:
            return Result.failure(ReservationError.RATE_LIMITED)
        return None

    async def _ensure_identity_unused(self, uow, email: str, wallet: str):
        if await uow.email_used(email):
            raise _Abort(ReservationError.EMAIL_ALREADY_USED)
        if await uow.wallet_used(wallet):
            raise _Abort(ReservationError.WALLET_ALREADY_USED)

    async def _classify_conflict(self, email: str, wallet: str) -> Result:
        # The losing transaction has rolled back; read what the winner committed
        try:
            async with self.store.transaction() as uow:
                if await uow.email_used(email):
                    return Result.failure(ReservationError.EMAIL_ALREADY_USED)
                if await uow.wallet_used(wallet):
                    return Result.failure(ReservationError.WALLET_ALREADY_USED)
        except SQLAlchemyError:
            logger.exception("Database error while classifying a registration conflict")
        return Result.failure(ReservationError.INTERNAL_ERROR)

    async def _sync_identity_cache(self, email: str, wallet: str):
        await self.cache.store(self.cache.email_key(email), True)
        await self.cache.store(self.cache.wallet_key(wallet), True)
