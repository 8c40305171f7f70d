"""
Redis client construction.

The notifier built at application startup owns the client it creates here;
there is no module-level pool.
"""

from __future__ import annotations

import redis.asyncio as redis

from shared.config.settings import Settings
from shared.config.logging import get_logger

logger = get_logger(__name__)


def create_redis_pool(config: Settings) -> redis.Redis:
    """Create an async Redis client backed by its own connection pool."""
    client = redis.from_url(
        config.redis_url,
        max_connections=config.redis_pool_max_connections,
        decode_responses=True,
        socket_connect_timeout=config.redis_socket_timeout,
        socket_timeout=config.redis_socket_timeout,
        health_check_interval=30,
    )
    logger.info(
        "Redis async pool initialized",
        max_connections=config.redis_pool_max_connections,
        timeout=config.redis_socket_timeout,
    )
    return client
