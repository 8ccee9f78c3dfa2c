"""
Redis caching service for the weekly timetable.

CACHING STRATEGY
================

What we cache:
  - The active schedule list served by GET /schedules (JSON-serialized)
  - Cache key: "schedules:active"

Why:
  - Every calendar screen loads the timetable first
  - It only changes when an administrator edits a schedule

Invalidation strategy:
  - On schedule create / update / delete: delete every "schedules:*" key
  - TTL-based expiry as safety net (5 minutes)

What is never cached:
  - Day availability, occupancy and reservations. Monthly calendars and
    booking checks must reflect committed state; a stale count here is
    an overbooking.

Redis is advisory: if it is disabled or down, reads fall through to the
database and writes are skipped.
"""

import json
from typing import Optional

import redis.asyncio as redis
from swimclub.core.config import get_settings
from swimclub.core.logging import get_logger
from swimclub.core.metrics import record_cache_operation, redis_connection_errors

logger = get_logger(__name__)
settings = get_settings()

ACTIVE_SCHEDULES_KEY = "schedules:active"

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
            redis_connection_errors.inc()
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


async def get_cached_schedules() -> Optional[list[dict]]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(ACTIVE_SCHEDULES_KEY)
        record_cache_operation("get", hit=data is not None)
        if data:
            return json.loads(data)
    except Exception as e:
        logger.error("cache_get_error", key=ACTIVE_SCHEDULES_KEY, error=str(e))

    return None


async def set_cached_schedules(schedules: list[dict]) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(ACTIVE_SCHEDULES_KEY, settings.REDIS_CACHE_TTL, json.dumps(schedules, default=str))
        record_cache_operation("set", hit=False)
        logger.debug("cache_set", key=ACTIVE_SCHEDULES_KEY, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=ACTIVE_SCHEDULES_KEY, error=str(e))


async def invalidate_schedule_cache() -> None:
    """Delete every cached timetable key."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match="schedules:*", count=100):
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
