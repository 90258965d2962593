"""
Redis client and RQ queue factory for notification delivery
"""

from typing import Optional

import redis
from rq import Queue

from payloom.infrastructure.settings import get_settings

settings = get_settings()

# Connection pool is lazy: nothing connects until the first command
redis_pool = redis.ConnectionPool.from_url(settings.REDIS_URL)
redis_client = redis.Redis(connection_pool=redis_pool)


def get_redis() -> redis.Redis:
    return redis_client


def get_queue(name: Optional[str] = None, connection: Optional[redis.Redis] = None) -> Queue:
    """Queue consumed by payloom.workers.worker (NOTIFICATION_QUEUE unless named)"""
    return Queue(name or settings.NOTIFICATION_QUEUE, connection=connection or redis_client)


def ping_redis() -> bool:
    try:
        return bool(redis_client.ping())
    except redis.RedisError:
        return False
