import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import async_sessionmaker

from invite_gate.config import settings
from invite_gate.core.cache import CacheAside, MemoryCacheBackend, RedisCacheBackend
from invite_gate.core.logging import setup_logging
from invite_gate.core.rate_limiter import MemoryCounterStore, RateLimiter, RedisCounterStore
from invite_gate.core.redis_client import close_redis, create_redis
from invite_gate.core.results import ReservationError, Result
from invite_gate.database import create_engine_from_settings, create_session_factory
from invite_gate.services import (
    EligibilityOracle,
    InviteCodeService,
    ReservationCoordinator,
    ReservationStore,
    SignatureVerifier,
    StakingContractClient,
)

logger = logging.getLogger(__name__)


def configure_services(
    app: FastAPI,
    session_factory: async_sessionmaker,
    redis_client=None,
    staking_provider=None
):
    """
    Build the collaborators once and attach them to app.state.

    With no Redis client the counters and cache live in process memory, which
    is only correct for a single worker.
    """
    if redis_client is not None:
        counter_store = RedisCounterStore(redis_client)
        cache_backend = RedisCacheBackend(redis_client)
    else:
        logger.warning("No Redis configured - using in-process rate limiter and cache")
        counter_store = MemoryCounterStore()
        cache_backend = MemoryCacheBackend()

    points = settings.rate_limit_points
    window = settings.rate_limit_window_seconds
    cache = CacheAside(
        cache_backend,
        registration_ttl=settings.registration_cache_ttl,
        eligibility_ttl=settings.eligibility_cache_ttl
    )
    store = ReservationStore(session_factory)

    if staking_provider is None:
        staking_provider = StakingContractClient(
            rpc_url=settings.staking_rpc_url.get_secret_value(),
            contract_address=settings.staking_contract_address,
            timeout=settings.oracle_timeout_seconds
        )
    oracle = EligibilityOracle(
        staking_provider,
        cache,
        required_stake_seconds=settings.required_stake_seconds,
        timeout=settings.oracle_timeout_seconds
    )

    app.state.store = store
    app.state.redis = redis_client
    app.state.eligibility_oracle = oracle
    app.state.invite_service = InviteCodeService(
        store, cache, RateLimiter(counter_store, "invite_create", points, window)
    )
    app.state.reservation_coordinator = ReservationCoordinator(
        store,
        cache,
        code_limiter=RateLimiter(counter_store, "invite_reserve", points, window),
        nft_limiter=RateLimiter(counter_store, "register_nft", points, window),
        signature_verifier=SignatureVerifier(),
        eligibility_oracle=oracle
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging(settings.log_level, settings.log_file)
    engine = create_engine_from_settings()
    redis_client = create_redis(settings.redis_url) if settings.redis_url else None
    configure_services(app, create_session_factory(engine), redis_client)
    logger.info(f"Invite gate started in {settings.environment} mode")

    yield

    # Shutdown
    await close_redis(redis_client)
    await engine.dispose()


app = FastAPI(lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


def get_store(request: Request) -> ReservationStore:
    return request.app.state.store


def get_invite_service(request: Request) -> InviteCodeService:
    return request.app.state.invite_service


def get_reservation_coordinator(request: Request) -> ReservationCoordinator:
    return request.app.state.reservation_coordinator


def get_eligibility_oracle(request: Request) -> EligibilityOracle:
    return request.app.state.eligibility_oracle


ERROR_STATUS_CODES = {
    ReservationError.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ReservationError.INVALID_CODE: status.HTTP_404_NOT_FOUND,
    ReservationError.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ReservationError.CODE_INACTIVE: status.HTTP_409_CONFLICT,
    ReservationError.CODE_EXHAUSTED: status.HTTP_409_CONFLICT,
    ReservationError.EMAIL_ALREADY_USED: status.HTTP_409_CONFLICT,
    ReservationError.WALLET_ALREADY_USED: status.HTTP_409_CONFLICT,
    ReservationError.INVALID_SIGNATURE: status.HTTP_400_BAD_REQUEST,
    ReservationError.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ReservationError.ELIGIBILITY_NOT_MET: status.HTTP_403_FORBIDDEN,
    ReservationError.ELIGIBILITY_CHECK_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ReservationError.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def raise_for_result(result: Result):
    """Turn a failed service Result into the matching HTTPException."""
    if result.ok:
        return
    raise HTTPException(
        status_code=ERROR_STATUS_CODES[result.error],
        detail={"error": result.error.value, "message": result.detail, "retryable": result.error.retryable}
    )
