"""Per-client request quotas counted in the shared cache."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Tuple

from fastapi import Depends, HTTPException, Request

from config import settings
from services.cache import CacheStore, get_cache_store


# Used only while the cache is unreachable.
_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def client_identifier(request: Request) -> str:
    """Caller address; X-Forwarded-For is honored only from a trusted proxy."""
    peer = request.client.host if request.client and request.client.host else None
    if peer and peer in settings.TRUSTED_PROXY_IPS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded and forwarded.split(",")[0].strip():
            return forwarded.split(",")[0].strip()
    return peer or "unknown"


async def _count_locally(key: str, window_seconds: int) -> int:
    now = time.time()
    async with _local_lock:
        count, reset_at = _local_counters.get(key, (0, now + window_seconds))
        if now >= reset_at:
            count, reset_at = 0, now + window_seconds
        count += 1
        _local_counters[key] = (count, reset_at)
        return count


def rate_limit(prefix: str, limit: int, window_seconds: int) -> Callable[..., None]:
    """Return a FastAPI dependency allowing `limit` calls per client per window."""

    async def _dependency(request: Request, cache: CacheStore = Depends(get_cache_store)):
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = f"rate:{prefix}:{client_identifier(request)}"
        count = await cache.incr_window(key, window_seconds)
        if count is None:
            count = await _count_locally(key, window_seconds)

        if count > limit:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded for {prefix}. Try again later.",
                headers={"Retry-After": str(window_seconds)},
            )

    return _dependency
