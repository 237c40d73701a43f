"""Redis access: per-user namespaced wrapper plus a shared catalog cache.

UserRedis prefixes every key with u:{user_id}: so one user's one-time
values (OAuth state nonces) can never be read or consumed by another.
Provider catalogs (voices, replicas) are identical for every user and are
cached under cache:{name} with a short TTL.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis
import structlog

from src.copilot.config import get_settings
from src.copilot.core.identity import get_current_user_context

logger = structlog.get_logger(__name__)

# ── Module-level Redis pool (lazy init) ─────────────────────────────────────

_redis_pool: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis:
    """Get or create the Redis connection pool singleton."""
    global _redis_pool
    if _redis_pool is None:
        settings = get_settings()
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.close()
        _redis_pool = None


# ── User Redis Wrapper ─────────────────────────────────────────────────────


class UserRedis:
    """User-aware Redis wrapper that auto-prefixes all keys with u:{user_id}:.

    The user id comes from the current UserContext unless one is passed
    explicitly (the OAuth callback knows the user only from the signed state).
    """

    def __init__(self, redis_client: aioredis.Redis, user_id: str | None = None):
        self._redis = redis_client
        self._user_id = user_id

    def _key(self, key: str) -> str:
        user_id = self._user_id or get_current_user_context().user_id
        return f"u:{user_id}:{key}"

    async def get(self, key: str) -> str | None:
        return await self._redis.get(self._key(key))

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        await self._redis.set(self._key(key), value, ex=ex)

    async def delete(self, key: str) -> int:
        return await self._redis.delete(self._key(key))

    async def pop(self, key: str) -> str | None:
        """Atomically read and delete a key (GETDEL)."""
        return await self._redis.getdel(self._key(key))


# ── Shared catalog cache ───────────────────────────────────────────────────


class CatalogCache:
    """JSON cache for provider catalogs shared by all users.

    Cache failures are logged and treated as misses; a Redis outage only
    costs an extra provider call.
    """

    def __init__(self, redis_client: aioredis.Redis | None, ttl_seconds: int = 3600):
        self._redis = redis_client
        self._ttl = ttl_seconds

    async def get(self, name: str) -> Any | None:
        if self._redis is None:
            return None
        try:
            cached = await self._redis.get(f"cache:{name}")
        except Exception:
            logger.warning("catalog_cache.get_failed", name=name, exc_info=True)
            return None
        return json.loads(cached) if cached else None

    async def set(self, name: str, value: Any) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(f"cache:{name}", json.dumps(value), ex=self._ttl)
        except Exception:
            logger.warning("catalog_cache.set_failed", name=name, exc_info=True)
