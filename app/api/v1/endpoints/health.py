"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from app.config import settings
from app.core.firebase import is_firebase_initialized
from app.core.redis_client import check_redis_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response model."""

    status: str
    version: str
    environment: str
    firebase: str
    redis: str
    rate_limit_backend: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Detailed health check with Firebase and Redis status.

    Redis only matters when it backs the rate limiter; otherwise its state
    is reported but does not degrade the service.
    """
    firebase_ready = is_firebase_initialized()
    redis_required = settings.rate_limit_backend == "redis"
    redis_healthy = await check_redis_connection() if redis_required else False

    healthy = firebase_ready and (redis_healthy or not redis_required)
    return DetailedHealthResponse(
        status="healthy" if healthy else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        firebase="healthy" if firebase_ready else "unavailable",
        redis=("healthy" if redis_healthy else "unhealthy") if redis_required else "unused",
        rate_limit_backend=settings.rate_limit_backend,
    )
