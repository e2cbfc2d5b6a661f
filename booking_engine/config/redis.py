# booking_engine/config/redis.py
"""Redis client for distributed booking locks"""
import redis
from datetime import date
from typing import Optional

from booking_engine.config.settings import get_settings

settings = get_settings()

_redis_pool: Optional[redis.ConnectionPool] = None


def get_redis_pool() -> redis.ConnectionPool:
    """Lazily build the shared pool; nothing connects until a lock is taken"""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            retry_on_timeout=True,
            socket_connect_timeout=2,
        )
    return _redis_pool


def get_redis() -> redis.Redis:
    return redis.Redis(connection_pool=get_redis_pool())


def close_redis_pool() -> None:
    global _redis_pool
    if _redis_pool is not None:
        _redis_pool.disconnect()
        _redis_pool = None


def redis_error() -> Optional[str]:
    """Ping Redis, returning the failure text or None when it answers"""
    try:
        get_redis().ping()
    except redis.RedisError as e:
        return str(e)
    return None


class RedisKeys:
    """Redis key patterns for consistent naming"""

    # One lock per business calendar day
    BOOKING_LOCK = "lock:booking:{business_id}:{date}"

    @classmethod
    def booking_lock(cls, business_id, day: date) -> str:
        return cls.BOOKING_LOCK.format(business_id=str(business_id), date=day.isoformat())
