"""
Hybrid in-memory + Redis rate limiting for public endpoints
Counts live in memory and are synced to Redis periodically when it is configured
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request

from . import config

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None
_redis_unavailable = False

# In-memory cache for rate limiting
# Format: {key: {'count': int, 'reset_time': int, 'last_redis_sync': int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

# Configuration
MEMORY_CACHE_SYNC_INTERVAL = 10  # Sync to Redis every 10 seconds
MEMORY_CACHE_CLEANUP_INTERVAL = 60  # Clean up expired entries every 60 seconds
last_cleanup_time = 0


def redis_configured() -> bool:
    return bool(os.getenv("REDIS_URL") or os.getenv("REDIS_HOST"))


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the shared Redis client.
    Returns None when Redis is not configured or unreachable (fail-open).
    """
    global redis_client, _redis_unavailable

    if redis_client is not None or _redis_unavailable or not redis_configured():
        return redis_client

    logger.info("🔄 Initializing Redis connection...")
    redis_url = os.getenv("REDIS_URL")

    try:
        if redis_url:
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        else:
            client = redis.Redis(
                host=os.getenv("REDIS_HOST", "localhost"),
                port=int(os.getenv("REDIS_PORT", "6379")),
                password=os.getenv("REDIS_PASSWORD", None),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        client.ping()
        redis_client = client
        logger.info("Redis connected successfully")
    except redis.RedisError as e:
        _redis_unavailable = True
        logger.error(f"❌ Failed to connect to Redis: {e}")
        logger.warning("⚠️ Falling back to process-local rate limits and locks")

    return redis_client


def cleanup_expired_cache():
    """Remove expired entries from memory cache"""
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [
            k for k, v in memory_cache.items() if current_time >= v.get("reset_time", 0)
        ]
        for k in expired_keys:
            del memory_cache[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")

    last_cleanup_time = current_time


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None
) -> tuple[bool, int, int]:
    """Check if rate limit is exceeded

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    current_time = int(time.time())
    cleanup_expired_cache()

    with cache_lock:
        if key not in memory_cache:
            entry = {
                "count": 0,
                "reset_time": current_time + window_seconds,
                "last_redis_sync": current_time,
            }
            if client is not None:
                try:
                    redis_count = client.get(key)
                    redis_ttl = client.ttl(key)
                    if redis_count and redis_ttl > 0:
                        entry["count"] = int(redis_count)
                        entry["reset_time"] = current_time + redis_ttl
                except redis.RedisError as e:
                    logger.warning(f"⚠️ Failed to load from Redis, using memory only: {e}")
            memory_cache[key] = entry

        cache_entry = memory_cache[key]

        # Check if window has expired
        if current_time >= cache_entry["reset_time"]:
            cache_entry["count"] = 0
            cache_entry["reset_time"] = current_time + window_seconds
            cache_entry["last_redis_sync"] = 0

        is_allowed = cache_entry["count"] < limit
        if is_allowed:
            cache_entry["count"] += 1

        # Sync to Redis periodically (not on every request)
        time_since_sync = current_time - cache_entry.get("last_redis_sync", 0)
        if client is not None and time_since_sync >= MEMORY_CACHE_SYNC_INTERVAL:
            try:
                client.set(key, cache_entry["count"], ex=window_seconds)
                cache_entry["last_redis_sync"] = current_time
            except redis.RedisError as e:
                logger.warning(f"⚠️ Failed to sync to Redis: {e}")

        ttl = cache_entry["reset_time"] - current_time
        return is_allowed, cache_entry["count"], max(0, ttl)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
):
    """FastAPI dependency enforcing a per-IP request limit"""
    if not config.RATE_LIMIT_ENABLED:
        return

    key = f"{key_prefix}:{client_ip(request)}"
    is_allowed, current_count, ttl = check_rate_limit(
        key, limit, window_seconds, get_redis_client()
    )

    if not is_allowed:
        logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please wait a moment and try again.",
            headers={"Retry-After": str(ttl)},
        )

    request.state.rate_limit_remaining = limit - current_count


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit"):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        reserve_limit = create_rate_limiter(limit=30, window_seconds=60, key_prefix="reserve")

        @router.post("/reserve-slot")
        async def reserve_slot(data: ReserveSlotRequest, _: None = Depends(reserve_limit)):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix)

    return rate_limiter
