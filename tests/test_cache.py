# tests/test_cache.py
"""Read cache backends and the no-stale-read-after-write contract"""

from types import SimpleNamespace

import pytest

from doodleboard.core.errors import DependencyError
from doodleboard.services import cache as cache_module
from doodleboard.services.cache import MemoryCacheBackend, ReadCache, build_cache, list_cache_key
from doodleboard.services.feed import FeedReader
from tests.helpers import BrokenBackend, new_doodle


def test_cache_keys_are_deterministic():
    assert list_cache_key("recent", 1, 20) == "doodles:recent:1:20"
    assert list_cache_key("popular", 3, 5) == list_cache_key("popular", 3, 5)


def test_build_cache_rejects_unknown_backend():
    with pytest.raises(ValueError):
        build_cache("memcached")
    assert isinstance(build_cache("memory").backend, MemoryCacheBackend)


@pytest.mark.asyncio
async def test_get_set_roundtrip(cache):
    assert await cache.get("doodles:recent:1:20") is None
    await cache.set("doodles:recent:1:20", {"doodles": [], "pagination": {"page": 1}})
    assert await cache.get("doodles:recent:1:20") == {"doodles": [], "pagination": {"page": 1}}


@pytest.mark.asyncio
async def test_entries_expire_after_ttl(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(cache_module, "time", SimpleNamespace(monotonic=lambda: now[0]))
    cache = ReadCache(MemoryCacheBackend(), ttl=60)

    await cache.set("doodles:recent:1:20", {"v": 1})
    now[0] += 59
    assert await cache.get("doodles:recent:1:20") == {"v": 1}
    now[0] += 2
    assert await cache.get("doodles:recent:1:20") is None


@pytest.mark.asyncio
async def test_invalidate_all_only_touches_prefix(cache):
    await cache.set("doodles:recent:1:20", {"v": 1})
    await cache.set("doodles:popular:2:10", {"v": 2})
    await cache.set("stats:global", {"v": 3})

    assert await cache.invalidate_all("doodles:") == 2
    assert await cache.get("doodles:recent:1:20") is None
    assert await cache.get("doodles:popular:2:10") is None
    assert await cache.get("stats:global") == {"v": 3}


@pytest.mark.asyncio
async def test_backend_failures_surface_as_dependency_errors():
    cache = ReadCache(BrokenBackend())
    with pytest.raises(DependencyError):
        await cache.get("doodles:recent:1:20")
    with pytest.raises(DependencyError):
        await cache.set("doodles:recent:1:20", {})
    with pytest.raises(DependencyError) as info:
        await cache.invalidate_all()
    assert info.value.status_code == 500
    assert "connection refused" not in info.value.message


@pytest.mark.asyncio
async def test_feed_never_serves_data_older_than_last_write(store, cache, ledger):
    feed = FeedReader(store, cache)
    d = await store.insert(new_doodle(1))

    before = await feed.list_page(1, 20, "recent")
    assert before["doodles"][0]["reactions"]["like"] == 0
    assert await cache.get(list_cache_key("recent", 1, 20)) == before

    await ledger.try_react(str(d.id), "like", "origin-a")

    after = await feed.list_page(1, 20, "recent")
    assert after["doodles"][0]["reactions"]["like"] == 1


@pytest.mark.asyncio
async def test_feed_clamps_arguments(store, cache):
    feed = FeedReader(store, cache, default_limit=20, max_limit=100)
    body = await feed.list_page(page=0, limit=500, sort="weird")
    assert body["pagination"]["page"] == 1
    assert body["pagination"]["limit"] == 100
    assert await cache.get(list_cache_key("recent", 1, 100)) is not None
