"""Rate limiting utilities using throttled-py"""
import os
from datetime import timedelta
from throttled import Throttled, RateLimiterType, store, rate_limiter

from core.config import logger

# Initialize storage - Redis for production, MemoryStore for development
try:
    redis_url = os.getenv("REDIS_URL", "").strip()
    if redis_url:
        # RedisStore expects the URL string, not a Redis client object
        storage = store.RedisStore(server=redis_url)
        logger.info("[rate_limit] Using Redis for rate limiting")
    else:
        storage = store.MemoryStore()
        logger.warning("[rate_limit] REDIS_URL not set - using in-memory storage (not suitable for production with multiple workers)")
except Exception as ex:
    # Fallback to memory storage if Redis is not available
    storage = store.MemoryStore()
    logger.warning(f"[rate_limit] Redis connection failed, using in-memory storage: {ex}")


def _per_minutes(minutes: int, env_name: str, default: int) -> Throttled:
    limit = int(os.getenv(env_name, str(default)) or default)
    return Throttled(
        using=RateLimiterType.FIXED_WINDOW.value,
        quota=rate_limiter.per_duration(timedelta(minutes=minutes), limit=limit),
        store=storage,
    )


# Policy retrieval (view + resend): 10 requests per IP per 15 minutes (guessing protection)
retrieve_policy_throttle = _per_minutes(15, "RETRIEVE_POLICY_RATE_LIMIT", 10)

# Vehicle lookups cost money upstream: 30 per IP per 10 minutes
vehicle_lookup_throttle = _per_minutes(10, "VEHICLE_LOOKUP_RATE_LIMIT", 30)


def check_rate_limit(throttle: Throttled, key: str) -> tuple[bool, str]:
    """
    Consume one unit of quota for key.

    Returns:
        Tuple of (allowed: bool, error_message: str)
    """
    try:
        result = throttle.limit(key, cost=1)
        if result.limited:
            return False, "Too many requests. Please try again later."
        return True, ""
    except Exception as ex:
        logger.warning(f"[rate_limit] check failed for {key}: {ex}")
        # Fail open - a broken limiter store must not block customers
        return True, ""
