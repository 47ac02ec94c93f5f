import logging

from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from invite_gate.core.cache import CacheAside
from invite_gate.core.rate_limiter import RateLimiter
from invite_gate.core.results import ReservationError, Result
from invite_gate.models import InviteCode
from invite_gate.schemas.invite_code import CodeUsageResponse, InviteCodeStats
from invite_gate.utils.crypto import generate_invite_code
from invite_gate.utils.identity import normalize_email, normalize_wallet

# Configure logging
logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 10


class InviteCodeService:
    """
    Invite creation and the read-only lookups.

    The lookups answer from the cache when they can. They mutate nothing, so a
    stale answer here can never let a code or identity be used twice.
    """

    def __init__(self, store, cache: CacheAside, create_limiter: RateLimiter):
        self.store = store
        self.cache = cache
        self.create_limiter = create_limiter

    async def create_invite_code(self, creator_email: str, max_uses: int) -> Result[InviteCode]:
        """
        Creates a new invitation code with a freshly generated unique token.

        Args:
            creator_email (str): Email of the creator, used as the rate limit key
            max_uses (int): Number of registrations the code grants (1-100)

        Returns:
            Result[InviteCode]: The created invite, RATE_LIMITED, or INVALID_REQUEST
            when max_uses is outside 1-100
        """
        if not 1 <= max_uses <= 100:
            return Result.failure(ReservationError.INVALID_REQUEST, "maxUses must be between 1 and 100")
        creator_email = normalize_email(creator_email)

        try:
            allowed = await self.create_limiter.consume(creator_email)
        except (RedisError, OSError):
            logger.exception(f"Rate limiter store unavailable for {creator_email}")
            return Result.failure(ReservationError.INTERNAL_ERROR, "Rate limiter unavailable")
        if not allowed:
            return Result.failure(ReservationError.RATE_LIMITED, "Too many code generation attempts")

        try:
            for _ in range(MAX_CODE_ATTEMPTS):
                code = generate_invite_code()
                if await self.store.find_by_code(code) is not None:
                    continue
                try:
                    invite = await self.store.create_invite_code(code, creator_email, max_uses)
                except IntegrityError:
                    # Lost a race for the same code; draw another
                    continue
                logger.info(f"Created invite code {invite.code} for {creator_email} (max uses {max_uses})")
                return Result.success(invite)
        except SQLAlchemyError:
            logger.exception("Database error creating invite code")
            return Result.failure(ReservationError.INTERNAL_ERROR)

        logger.error(f"Could not allocate a unique invite code after {MAX_CODE_ATTEMPTS} attempts")
        return Result.failure(ReservationError.INTERNAL_ERROR, "Could not allocate a unique invite code")

    async def verify_invite_code(self, code: str) -> Result[bool]:
        """Whether the code exists, is active, and has uses left."""
        cache_key = self.cache.invite_key(code)
        cached = await self.cache.lookup(cache_key)
        if isinstance(cached, dict) and "isValid" in cached:
            return Result.success(bool(cached["isValid"]))

        try:
            invite = await self.store.find_by_code(code)
        except SQLAlchemyError:
            logger.exception(f"Database error verifying invite code {code}")
            return Result.failure(ReservationError.INTERNAL_ERROR)

        snapshot = {"isValid": False}
        if invite is not None:
            snapshot = {
                "isValid": invite.is_redeemable,
                "currentUses": invite.current_uses,
                "maxUses": invite.max_uses,
            }
        await self.cache.store_if_absent(cache_key, snapshot)
        return Result.success(snapshot["isValid"])

    async def is_email_used(self, email: str) -> Result[bool]:
        email = normalize_email(email)
        cache_key = self.cache.email_key(email)
        cached = await self.cache.lookup(cache_key)
        if isinstance(cached, bool):
            return Result.success(cached)

        try:
            is_used = await self.store.find_by_email(email) is not None
        except SQLAlchemyError:
            logger.exception(f"Database error checking email {email}")
            return Result.failure(ReservationError.INTERNAL_ERROR)

        await self.cache.store_if_absent(cache_key, is_used)
        return Result.success(is_used)

    async def is_wallet_used(self, wallet_address: str) -> Result[bool]:
        wallet = normalize_wallet(wallet_address)
        cache_key = self.cache.wallet_key(wallet)
        cached = await self.cache.lookup(cache_key)
        if isinstance(cached, bool):
            return Result.success(cached)

        try:
            is_used = await self.store.find_by_wallet(wallet) is not None
        except SQLAlchemyError:
            logger.exception(f"Database error checking wallet {wallet}")
            return Result.failure(ReservationError.INTERNAL_ERROR)

        await self.cache.store_if_absent(cache_key, is_used)
        return Result.success(is_used)

    async def get_invite_code_stats(self, code: str) -> Result[InviteCodeStats]:
        """
        Usage statistics for a code, always read from the database.

        Returns:
            Result[InviteCodeStats]: usage count, remaining uses and the usage rows,
            or NOT_FOUND if the code does not exist
        """
        try:
            invite = await self.store.find_by_code(code)
            if invite is None:
                return Result.failure(ReservationError.NOT_FOUND, "Invalid invite code")
            usages = await self.store.list_usages(invite.id)
        except SQLAlchemyError:
            logger.exception(f"Database error reading stats for invite code {code}")
            return Result.failure(ReservationError.INTERNAL_ERROR)

        return Result.success(InviteCodeStats(
            usage_count=invite.current_uses,
            remaining_uses=invite.remaining_uses,
            usages=[CodeUsageResponse.model_validate(usage) for usage in usages]
        ))
