"""Health endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from signalhub.database import health_check as db_health_check

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Returns:
        Status, timestamp in ISO8601 format, and database/redis health
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    pool = getattr(request.app.state, "pool", None)
    health_status["database"] = "healthy" if await db_health_check(pool) else "unavailable"

    redis_service = getattr(request.app.state, "redis_service", None)
    redis_ok = redis_service is not None and await redis_service.ping()
    health_status["redis"] = "healthy" if redis_ok else "unavailable"

    return health_status
