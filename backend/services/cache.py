"""
Redis Cache Service

Short-lived cache for site ownership and membership, read by the access
resolver on every site-scoped request. Key state (active, revoked, expiry)
is never cached.

Enabled with ENABLE_SITE_CACHE; TTL from SITE_CACHE_TTL_SECONDS.
"""

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from backend.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Lazy-initialized connection pool
_redis: aioredis.Redis | None = None


async def _get_redis() -> aioredis.Redis:
    """Get or create Redis connection."""
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
        )
    return _redis


async def get_cached(key: str) -> Any | None:
    """
    Get a cached value by key.

    Returns None if key doesn't exist or Redis is unavailable.
    """
    try:
        r = await _get_redis()
        data = await r.get(key)
        if data:
            return json.loads(data)
        return None
    except Exception as e:
        logger.debug(f"Cache miss (error): {key}: {e}")
        return None


async def set_cached(key: str, value: Any, ttl: int | None = None) -> bool:
    """
    Set a cached value with TTL.

    Returns True if cached successfully, False on error.
    """
    try:
        r = await _get_redis()
        await r.set(
            key,
            json.dumps(value, default=str),
            ex=ttl or settings.site_cache_ttl_seconds,
        )
        return True
    except Exception as e:
        logger.debug(f"Cache set failed: {key}: {e}")
        return False


# ── Key Builders ──────────────────────────────────────


def site_access_key(site_id: str) -> str:
    """Cache key for a site's owner and member ids."""
    return f"site-access:{site_id}"
