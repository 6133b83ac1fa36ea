"""
Redis connections and the RQ transfers queue.
"""

from .connection import (
    get_redis_connection,
    get_async_redis,
    get_transfer_queue,
    close_redis_connections,
    QUEUE_TRANSFERS,
)
from .tasks import transfer_asset_task, enqueue_asset_transfer

__all__ = [
    "get_redis_connection",
    "get_async_redis",
    "get_transfer_queue",
    "close_redis_connections",
    "QUEUE_TRANSFERS",
    "transfer_asset_task",
    "enqueue_asset_transfer",
]
