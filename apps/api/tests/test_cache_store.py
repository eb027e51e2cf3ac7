import asyncio
import json

import pytest

from services.cache import MAX_CACHE_TTL_SECONDS, CacheStore


class BrokenRedis:
    """Every command fails as if the cache host were unreachable."""

    async def get(self, key):
        raise ConnectionError("cache down")

    async def set(self, key, value, ex=None):
        raise ConnectionError("cache down")

    async def delete(self, *keys):
        raise ConnectionError("cache down")

    async def scan_iter(self, match=None, count=None):
        raise ConnectionError("cache down")
        yield  # pragma: no cover


class SlowRedis:
    async def get(self, key):
        await asyncio.sleep(1)
        return json.dumps({"late": True})


@pytest.mark.asyncio
async def test_set_then_get_returns_json_value(cache_store, fake_redis):
    stored = await cache_store.set("program:1", {"id": 1, "title": "Budgeting"}, 60)

    assert stored is True
    assert await cache_store.get("program:1") == {"id": 1, "title": "Budgeting"}
    assert fake_redis.ttls["test:program:1"] == 60


@pytest.mark.asyncio
async def test_ttl_is_clamped_to_bounds(cache_store, fake_redis):
    await cache_store.set("a", 1, 0)
    await cache_store.set("b", 1, 99999)

    assert fake_redis.ttls["test:a"] == 1
    assert fake_redis.ttls["test:b"] == MAX_CACHE_TTL_SECONDS


@pytest.mark.asyncio
async def test_corrupt_value_is_treated_as_miss(cache_store, fake_redis):
    fake_redis.store["test:program:7"] = "{not json"

    assert await cache_store.get("program:7") is None


@pytest.mark.asyncio
async def test_outage_degrades_to_miss_and_noop():
    cache = CacheStore(BrokenRedis(), namespace="test:")

    assert await cache.get("program:1") is None
    assert await cache.set("program:1", {"id": 1}, 60) is False
    assert await cache.delete("program:1") == 0
    assert await cache.invalidate_prefix("programs:") == 0


@pytest.mark.asyncio
async def test_slow_cache_times_out_as_miss():
    cache = CacheStore(SlowRedis(), namespace="test:", timeout_seconds=0.05)

    assert await cache.get("program:1") is None


@pytest.mark.asyncio
async def test_invalidate_prefix_removes_only_matching_keys(cache_store, fake_redis):
    await cache_store.set("programs:list:anonymous:abc", [], 60)
    await cache_store.set("programs:list:admin:def", [], 60)
    await cache_store.set("program:3", {"id": 3}, 60)
    fake_redis.store["other:programs:list"] = "[]"

    removed = await cache_store.invalidate_prefix("programs:")

    assert removed == 2
    assert await cache_store.get("program:3") == {"id": 3}
    assert "other:programs:list" in fake_redis.store


@pytest.mark.asyncio
async def test_unserializable_value_is_dropped(cache_store, fake_redis):
    assert await cache_store.set("bad", {"when": object()}, 60) is False
    assert fake_redis.store == {}
