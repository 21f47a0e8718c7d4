"""Health check endpoints."""

from fastapi import APIRouter, Request

from src.config import get_settings
from src.core.database import AsyncCassandraConnection
from src.core.redis import redis_reachable


router = APIRouter(prefix="/health", tags=["health"])

_SERVICES = ("course_reader", "progress_service", "certificate_service", "reward_service")


@router.get("/live")
async def liveness() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool | list[str]]:
    """Readiness check.

    Redis is optional (locks fall back to the local process), so the check
    only reports ``degraded`` when a service failed to wire up.
    """
    missing = [
        name for name in _SERVICES if getattr(request.app.state, name, None) is None
    ]
    return {
        "status": "degraded" if missing else "ready",
        "missing_services": missing,
        "database": AsyncCassandraConnection.is_connected(),
        "redis": await redis_reachable(),
    }


@router.get("")
async def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
