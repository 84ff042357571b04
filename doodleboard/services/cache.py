import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from doodleboard.config import settings
from doodleboard.core.errors import DependencyError

logger = logging.getLogger(__name__)

LIST_PREFIX = "doodles:"


def list_cache_key(sort: str, page: int, limit: int) -> str:
    return f"{LIST_PREFIX}{sort}:{page}:{limit}"


class RedisCacheBackend:
    def __init__(self, url: str = settings.REDIS_URL):
        self._client = redis.from_url(url)

    async def get(self, key: str) -> Optional[bytes]:
        return await self._client.get(key)

    async def setex(self, key: str, ttl: int, raw: str) -> None:
        await self._client.setex(key, ttl, raw)

    async def delete_prefix(self, prefix: str) -> int:
        count = 0
        async for k in self._client.scan_iter(match=f"{prefix}*"):
            count += await self._client.delete(k)
        return count

    async def close(self) -> None:
        await self._client.aclose()


class MemoryCacheBackend:
    """Single-process cache with per-key expiry, for local runs and tests."""

    def __init__(self):
        self._entries: Dict[str, Tuple[float, str]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return raw

    async def setex(self, key: str, ttl: int, raw: str) -> None:
        async with self._lock:
            self._entries[key] = (time.monotonic() + ttl, raw)

    async def delete_prefix(self, prefix: str) -> int:
        async with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    async def close(self) -> None:
        self._entries.clear()


class ReadCache:
    """JSON read cache for feed pages.

    Backend failures are raised as ``DependencyError``: a write must not be
    acknowledged while its invalidation is unknown.
    """

    def __init__(self, backend, ttl: int = settings.CACHE_TTL_SECONDS):
        self.backend = backend
        self.ttl = ttl

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.backend.get(key)
        except RedisError as exc:
            logger.error("Cache get failed for %s: %s", key, exc)
            raise DependencyError(detail=str(exc))
        return json.loads(raw) if raw else None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            await self.backend.setex(key, ttl or self.ttl, json.dumps(value))
        except RedisError as exc:
            logger.error("Cache set failed for %s: %s", key, exc)
            raise DependencyError(detail=str(exc))

    async def invalidate_all(self, prefix: str = LIST_PREFIX) -> int:
        try:
            count = await self.backend.delete_prefix(prefix)
        except RedisError as exc:
            logger.error("Cache invalidation failed for %s*: %s", prefix, exc)
            raise DependencyError(detail=str(exc))
        logger.debug("Invalidated %s cache entries under %s", count, prefix)
        return count

    async def close(self) -> None:
        await self.backend.close()


def build_cache(
    backend_name: str = settings.CACHE_BACKEND,
    redis_url: str = settings.REDIS_URL,
    ttl: int = settings.CACHE_TTL_SECONDS,
) -> ReadCache:
    name = (backend_name or "").strip().lower()
    if name == "memory":
        return ReadCache(MemoryCacheBackend(), ttl)
    if name == "redis":
        return ReadCache(RedisCacheBackend(redis_url), ttl)
    raise ValueError(f"Unknown CACHE_BACKEND {backend_name!r}")
