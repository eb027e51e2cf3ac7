"""
Health check endpoints.
"""

import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from services.cache import CacheStore, get_cache_store

router = APIRouter()

_HEALTH_PROBE_KEY = "health:probe"


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    """
    Health check endpoint.
    The store is required; the cache is optional, so a cache outage only
    degrades the status.
    """
    started = time.perf_counter()
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "cache": {"status": "unknown", "latency_ms": None, "type": "redis"},
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["database"] = "up"
    except Exception as e:
        health_status["database"] = f"down: {str(e)}"
        health_status["status"] = "unhealthy"

    cache_started = time.perf_counter()
    stored = await cache.set(_HEALTH_PROBE_KEY, {"status": "ok"}, 60)
    probe = await cache.get(_HEALTH_PROBE_KEY) if stored else None
    await cache.delete(_HEALTH_PROBE_KEY)
    health_status["cache"]["latency_ms"] = round((time.perf_counter() - cache_started) * 1000, 2)
    if isinstance(probe, dict) and probe.get("status") == "ok":
        health_status["cache"]["status"] = "up"
    else:
        health_status["cache"]["status"] = "down"
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    health_status["response_time_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return health_status


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
