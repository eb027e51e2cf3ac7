"""Best-effort Redis cache-aside store.

Every operation degrades to a miss or a no-op when Redis is slow, down, or
holds a corrupt value. Nothing here raises into the calling business code.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, List, Optional

import redis.asyncio as redis

from config import settings
from services.errors import CacheError

logger = logging.getLogger(__name__)

MIN_CACHE_TTL_SECONDS = 1
MAX_CACHE_TTL_SECONDS = 3600
_DELETE_BATCH_SIZE = 500
_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class CacheStore:
    """JSON get/set/prefix-invalidate over a shared key-value cache."""

    def __init__(
        self,
        client: Any,
        *,
        namespace: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._client = client
        self._namespace = settings.CACHE_KEY_PREFIX if namespace is None else namespace
        self._timeout = float(timeout_seconds if timeout_seconds is not None else settings.CACHE_TIMEOUT_SECONDS)

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise CacheError(f"{operation} timed out after {self._timeout}s") from exc
        except Exception as exc:
            raise CacheError(f"{operation} failed: {exc}") from exc

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss, corruption or outage."""
        try:
            raw = await self._call("get", self._client.get(self._key(key)))
        except CacheError as exc:
            logger.warning("cache_get_failed key=%s error=%s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("cache_get_corrupt key=%s error=%s", key, exc)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store value with a bounded TTL. Returns False when the write was dropped."""
        try:
            payload = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.warning("cache_set_unserializable key=%s error=%s", key, exc)
            return False

        ttl = max(MIN_CACHE_TTL_SECONDS, min(int(ttl_seconds), MAX_CACHE_TTL_SECONDS))
        try:
            await self._call("set", self._client.set(self._key(key), payload, ex=ttl))
        except CacheError as exc:
            logger.warning("cache_set_failed key=%s error=%s", key, exc)
            return False
        return True

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            removed = await self._call("delete", self._client.delete(*[self._key(key) for key in keys]))
        except CacheError as exc:
            logger.warning("cache_delete_failed keys=%s error=%s", keys, exc)
            return 0
        return int(removed or 0)

    async def _matching_keys(self, pattern: str) -> List[str]:
        return [key async for key in self._client.scan_iter(match=pattern, count=_DELETE_BATCH_SIZE)]

    async def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix; returns how many were removed."""
        pattern = _GLOB_SPECIAL.sub(r"\\\1", self._key(prefix)) + "*"
        try:
            keys = await self._call("scan", self._matching_keys(pattern))
            removed = 0
            for start in range(0, len(keys), _DELETE_BATCH_SIZE):
                batch = keys[start:start + _DELETE_BATCH_SIZE]
                removed += int(await self._call("delete", self._client.delete(*batch)) or 0)
        except CacheError as exc:
            logger.warning("cache_invalidate_failed prefix=%s error=%s", prefix, exc)
            return 0
        if removed:
            logger.info("cache_invalidate prefix=%s removed=%s", prefix, removed)
        return removed

    async def incr_window(self, key: str, window_seconds: int) -> Optional[int]:
        """Count one hit in a fixed window; None when the cache cannot count."""
        namespaced = self._key(key)
        try:
            count = int(await self._call("incr", self._client.incr(namespaced)))
            if count == 1:
                await self._call("expire", self._client.expire(namespaced, int(window_seconds)))
        except (CacheError, TypeError, ValueError) as exc:
            logger.warning("cache_incr_failed key=%s error=%s", key, exc)
            return None
        return count

    async def ping(self) -> bool:
        try:
            return bool(await self._call("ping", self._client.ping()))
        except CacheError as exc:
            logger.warning("cache_ping_failed error=%s", exc)
            return False

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except Exception as exc:
            logger.warning("cache_close_failed error=%s", exc)


_cache_store: Optional[CacheStore] = None


def get_cache_store() -> CacheStore:
    """FastAPI dependency returning the process-wide cache store."""
    global _cache_store
    if _cache_store is None:
        _cache_store = CacheStore(redis.from_url(settings.REDIS_URL, decode_responses=True))
    return _cache_store


async def close_cache_store() -> None:
    global _cache_store
    if _cache_store is not None:
        await _cache_store.close()
        _cache_store = None
