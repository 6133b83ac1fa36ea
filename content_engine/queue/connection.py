"""
Redis connection management.

The priority queue uses the asyncio client; RQ (asset transfers) needs
the synchronous client with raw bytes.
"""

from typing import Optional

from redis import Redis
from redis.asyncio import Redis as AsyncRedis
from rq import Queue

from content_engine.config import config

# Singleton connections
_redis_connection: Optional[Redis] = None
_async_redis_connection: Optional[AsyncRedis] = None

# Queue names
QUEUE_TRANSFERS = "transfers"


def _require_redis_url() -> str:
    redis_url = config.REDIS_URL
    if not redis_url:
        raise ValueError(
            "REDIS_URL environment variable is required for the job queue. "
            "Set up Upstash Redis or local Redis and configure REDIS_URL."
        )
    return redis_url


def get_redis_connection() -> Redis:
    """
    Get the synchronous Redis connection singleton (used by RQ).

    Raises:
        ValueError: If REDIS_URL is not configured
        ConnectionError: If Redis cannot be reached
    """
    global _redis_connection

    if _redis_connection is None:
        redis_url = _require_redis_url()

        _redis_connection = Redis.from_url(
            redis_url,
            decode_responses=False,  # RQ needs bytes
            socket_timeout=10,
            socket_connect_timeout=10,
            retry_on_timeout=True,
            health_check_interval=30,
        )

        try:
            _redis_connection.ping()
        except Exception as e:
            _redis_connection = None
            raise ConnectionError(f"Failed to connect to Redis: {e}")

    return _redis_connection


def get_async_redis() -> AsyncRedis:
    """Get the asyncio Redis client singleton (priority queue)."""
    global _async_redis_connection

    if _async_redis_connection is None:
        _async_redis_connection = AsyncRedis.from_url(
            _require_redis_url(),
            decode_responses=True,
            socket_timeout=10,
            socket_connect_timeout=10,
            retry_on_timeout=True,
            health_check_interval=30,
        )

    return _async_redis_connection


def get_transfer_queue() -> Queue:
    """Get the RQ queue that carries asset transfers."""
    return Queue(QUEUE_TRANSFERS, connection=get_redis_connection())


async def close_redis_connections():
    """Close both Redis connections (for cleanup)."""
    global _redis_connection, _async_redis_connection
    if _redis_connection is not None:
        _redis_connection.close()
        _redis_connection = None
    if _async_redis_connection is not None:
        await _async_redis_connection.aclose()
        _async_redis_connection = None
