"""Redis connection utilities.

Builds the shared client handle the limiter runs its script through. The
client owns a thread-safe connection pool, so one instance per process is
shared by every caller. There is no in-memory fallback: if Redis
is unreachable, callers see ``UnavailableError`` from the limiter.
"""

from __future__ import annotations

import logging

from redis import Redis
from redis.connection import ConnectionPool

from ratelimiter.core.config import RedisSettings, settings

logger = logging.getLogger(__name__)

_client: Redis | None = None


def build_redis_client(redis_settings: RedisSettings) -> Redis:
    """Create a Redis client backed by its own connection pool.

    No connection is opened here; the pool connects lazily on first use.

    Args:
        redis_settings: Connection URL, timeouts and pool size.

    Returns:
        Redis client returning raw (undecoded) replies.
    """

    pool = ConnectionPool.from_url(
        redis_settings.url,
        max_connections=redis_settings.max_connections,
        socket_timeout=redis_settings.socket_timeout_seconds,
        socket_connect_timeout=redis_settings.socket_connect_timeout_seconds,
        socket_keepalive=True,
    )
    logger.info(
        "redis.pool_created",
        extra={
            "redis_url": redis_settings.url,
            "max_connections": redis_settings.max_connections,
        },
    )
    return Redis(connection_pool=pool)


def get_redis_client() -> Redis:
    """Return the process-wide Redis client, creating it on first use."""

    global _client
    if _client is None:
        _client = build_redis_client(settings.redis)
    return _client


def reset_redis_client() -> None:
    """Drop the cached client and release its pooled connections."""

    global _client
    if _client is not None:
        _client.connection_pool.disconnect()
    _client = None
