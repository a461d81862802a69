"""
Shared Redis connection for the query cache and the readiness check.

One pool per process; the client is pinged once when first requested.
"""
import logging

import redis
from redis.connection import ConnectionPool

from insights.core.config import settings
from insights.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_pool: ConnectionPool | None = None
_client: redis.Redis | None = None


def get_redis_pool() -> ConnectionPool:
    global _pool
    if _pool is None:
        if not settings.REDIS_URL:
            raise ConfigurationError("REDIS_URL", "not set")
        _pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=2,
            socket_connect_timeout=2,
            health_check_interval=30,
            decode_responses=True,
        )
        logger.info("Redis pool ready (max_connections=%s)", settings.REDIS_MAX_CONNECTIONS)
    return _pool


def get_redis_client() -> redis.Redis:
    """Client on the shared pool; connection errors propagate to the caller."""
    global _client
    if _client is None:
        client = redis.Redis(connection_pool=get_redis_pool())
        client.ping()
        _client = client
    return _client


def close_redis_pool() -> None:
    global _pool, _client
    if _client is not None:
        _client.close()
        _client = None
    if _pool is not None:
        _pool.disconnect()
        _pool = None
        logger.info("Redis pool closed")
