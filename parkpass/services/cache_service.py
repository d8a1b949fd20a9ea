"""
Redis caching for the storefront catalog.

CACHING STRATEGY
================

What we cache:
  - The active product listing (products + ticket types + static event details),
    JSON-serialized under "catalog:products:v1".
  - Never live sold/remaining counts; those come from
    /catalog/events/{id}/availability

Why:
  - It is the most frequent read and changes only on catalog edits

Invalidation:
  - After every booking and cancellation (event availability moved)
  - TTL-based expiry as safety net

Redis is advisory only. Any Redis failure is logged and the caller falls
back to the database. Nothing on the booking write path reads from here:
capacity decisions are made by the database alone.
"""

import json
from typing import Optional

import redis.asyncio as redis
from parkpass.core.config import get_settings
from parkpass.core.logging import get_logger
from parkpass.core.metrics import record_cache_operation

logger = get_logger(__name__)

CATALOG_KEY_PREFIX = "catalog:"
CATALOG_PRODUCTS_KEY = f"{CATALOG_KEY_PREFIX}products:v1"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled or down."""
    global _redis_client
    settings = get_settings()

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await client.ping()
            _redis_client = client
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_cached_catalog() -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(CATALOG_PRODUCTS_KEY)
    except Exception as e:
        logger.error("cache_get_error", key=CATALOG_PRODUCTS_KEY, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data is None:
        logger.debug("cache_miss", key=CATALOG_PRODUCTS_KEY)
        return None
    return json.loads(data)


async def set_cached_catalog(products: list) -> None:
    client = await get_redis()
    if not client:
        return

    ttl = get_settings().REDIS_CACHE_TTL
    try:
        await client.setex(CATALOG_PRODUCTS_KEY, ttl, json.dumps(products, default=str))
        record_cache_operation("set", hit=True)
        logger.debug("cache_set", key=CATALOG_PRODUCTS_KEY, ttl=ttl)
    except Exception as e:
        logger.error("cache_set_error", key=CATALOG_PRODUCTS_KEY, error=str(e))


async def invalidate_catalog_cache() -> None:
    """Drop every catalog key. Called after sales and cancellations."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{CATALOG_KEY_PREFIX}*", count=100):
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
