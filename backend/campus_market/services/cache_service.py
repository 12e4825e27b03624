"""
Redis caching service for product listings.

CACHING STRATEGY
================

What we cache:
  - Public product listing responses (paginated, JSON-serialized)
  - Cache key pattern: "products:list:page={page}&size={size}&category={category}"

Invalidation strategy:
  - On booking and cancellation: quantities changed, and sold-out products
    drop out of the listing
  - On moderation, seller edits and deletion: the set of approved products changed
  - TTL-based expiry as safety net (5 minutes)

  All listing keys share the "products:list:" prefix so we can SCAN and
  delete them.

Why NOT cache individual products:
  - The booking engine reads products inside its own transaction; a stale
    cached quantity must never be used to decide a reservation
"""

import json
from typing import Optional

import redis.asyncio as redis
from campus_market.core.config import get_settings
from campus_market.core.logging import get_logger
from campus_market.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _make_product_list_key(page: int, page_size: int, category: Optional[str]) -> str:
    return f"products:list:page={page}&size={page_size}&category={(category or '').lower()}"


async def get_cached_products(page: int, page_size: int, category: Optional[str]) -> Optional[dict]:
    """Retrieve cached product list response."""
    client = await get_redis()
    if not client:
        return None

    key = _make_product_list_key(page, page_size, category)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=data is not None)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_products(
    page: int,
    page_size: int,
    category: Optional[str],
    data: dict,
) -> None:
    """Cache product list response with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_product_list_key(page, page_size, category)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_product_cache() -> None:
    """
    Invalidate all cached product listings.
    Uses SCAN to find and delete all keys matching the prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match="products:list:*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
