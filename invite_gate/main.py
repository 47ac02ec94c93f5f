import logging

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from invite_gate.common import app, get_store
from invite_gate.core.redis_client import ping_redis
from invite_gate.routers.invite_code_endpoints import router as InviteCodeEndpoints
from invite_gate.routers.nft_endpoints import router as NftEndpoints
from invite_gate.services import ReservationStore

logger = logging.getLogger(__name__)

# Include routers
app.include_router(InviteCodeEndpoints)
app.include_router(NftEndpoints)


@app.get("/api/health")
async def health(request: Request, store: ReservationStore = Depends(get_store)):
    """Liveness of the database and the Redis cache/counter store."""
    try:
        database_ok = await store.ping()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        database_ok = False
    redis_ok = await ping_redis(request.app.state.redis)

    healthy = database_ok and redis_ok
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "degraded", "database": database_ok, "redis": redis_ok}
    )
