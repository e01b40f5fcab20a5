"""
Health and Monitoring Router.

This module provides public endpoints for health checks and monitoring of the
Gallery Live API.

Endpoints Provided:
- `/healthcheck`: A basic, lightweight health check to confirm that the service
  is running.
- `/monitoring/ping`: A simple ping endpoint for basic connectivity testing.
- `/monitoring/detailed`: A comprehensive health check that verifies the status
  of the database, the image cache and the live sessions.
- `/monitoring/cache/stats`: Statistics of the image request cache.

Architectural Design:
- Separation of Concerns: Health and monitoring endpoints are grouped into their
  own routers (`health_router` and `monitoring_router`) to keep them separate
  from the gallery endpoints.
- Graceful Degradation: The detailed health check reports each component on
  its own, so the service reports "degraded" rather than failing outright when
  a component is down.
"""

from fastapi import APIRouter
from datetime import datetime, timezone
from typing import Dict, Any

from core.logging_config import get_logger
from core.cache import get_cache
from core.database import get_database_info
from .dependencies import get_connection_service

logger = get_logger(__name__)

SERVICE_NAME = "Gallery Live API"
SERVICE_VERSION = "1.0.0"

health_router = APIRouter(tags=["Health & Monitoring"])

monitoring_router = APIRouter(prefix="/monitoring", tags=["Health & Monitoring"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@health_router.get("/healthcheck")
async def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint

    Returns:
        Dict with status, timestamp, and version info
    """
    logger.debug("Health check requested")

    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
    }


@monitoring_router.get("/ping")
async def ping() -> Dict[str, str]:
    """Simple ping endpoint for connectivity testing"""
    logger.debug("Ping requested")
    return {"message": "pong", "timestamp": _now(), "version": SERVICE_VERSION}


@monitoring_router.get("/detailed")
async def detailed_health_check() -> Dict[str, Any]:
    """Detailed health check with component status"""
    logger.info("Detailed health check requested")

    health_status: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": _now(),
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
        "components": {},
    }

    # Database
    db_info = await get_database_info()
    health_status["components"]["database"] = {
        "status": "healthy" if db_info["connection_healthy"] else "unhealthy",
        "info": db_info,
    }
    if not db_info["connection_healthy"]:
        health_status["status"] = "degraded"

    # Cache
    cache_health = await get_cache().health_check()
    health_status["components"]["cache"] = cache_health
    if cache_health.get("status") != "healthy":
        health_status["status"] = "degraded"

    # Live sessions
    try:
        stats = get_connection_service().get_connection_stats()
        health_status["components"]["sessions"] = {"status": "healthy", "stats": stats}
    except RuntimeError as e:
        logger.warning(f"Session health check failed: {e}")
        health_status["components"]["sessions"] = {
            "status": "unavailable",
            "error": str(e),
        }
        health_status["status"] = "degraded"

    return health_status


@monitoring_router.get("/cache/stats")
async def get_cache_stats() -> Dict[str, Any]:
    """Get image cache statistics"""
    logger.info("Cache stats requested")
    stats = await get_cache().backend.stats()
    return {"cache_stats": stats, "timestamp": _now()}
