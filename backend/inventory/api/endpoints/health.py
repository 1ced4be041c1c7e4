"""
Health check endpoints for the Inventory API.

Liveness only proves the process is up. Readiness requires the database;
the cache is reported but a degraded cache never fails readiness, because
every read falls back to the database.
"""

from datetime import datetime, timezone
from typing import Any, Dict
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...core.config import Settings, get_settings
from ...core.database import DatabaseManager
from ...db import get_database_manager
from ...domain.cache.repository_interfaces import CacheBackend
from ..dependencies import get_cache_backend

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Returns a simple health status for load balancers and monitoring systems.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@router.get("/ready")
async def readiness_check(
    database: DatabaseManager = Depends(get_database_manager),
    cache_backend: CacheBackend = Depends(get_cache_backend),
):
    """
    Readiness check endpoint.

    Returns 503 when the database is unreachable.
    """
    database_health = await database.health_check()
    cache_health = await cache_backend.health_check()

    ready = database_health.get("status") == "healthy"
    if not ready:
        logger.warning(
            "Readiness check failed: database unavailable",
            extra={"database": database_health},
        )
    if cache_health.get("status") != "healthy":
        logger.warning(
            "Cache backend degraded, serving from database",
            extra={"cache": cache_health},
        )

    body = {
        "status": "ready" if ready else "not_ready",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {"database": database_health, "cache": cache_health},
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body,
    )
