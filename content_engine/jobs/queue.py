"""
Priority queue of job ids.

Backed by a Redis sorted set. Each member is a job id; its score packs
the priority rank and a monotonically increasing sequence number, so
ZPOPMIN returns high before medium before low, FIFO within a tier.
ZPOPMIN is atomic, which makes pop exclusive across worker instances.
"""

from typing import Optional, Protocol

from redis.asyncio import Redis

from content_engine.config import config
from content_engine.database.jobs import JobPriority
from content_engine.queue.connection import get_async_redis

# Leaves room for 10**12 enqueues per tier while staying exact in a double.
SEQUENCE_SPAN = 10 ** 12


def queue_score(priority: JobPriority | str, sequence: int) -> int:
    """Sorted-set score for a queue entry."""
    return JobPriority(priority).rank * SEQUENCE_SPAN + sequence


class PriorityQueue(Protocol):
    """Operations the producer, worker and sweeper rely on."""

    async def push(self, priority: JobPriority | str, job_id: str) -> None: ...

    async def pop(self) -> Optional[str]: ...

    async def contains(self, job_id: str) -> bool: ...

    async def size(self) -> int: ...


class RedisPriorityQueue:
    """
    Redis-backed priority queue.

    Usage:
        queue = RedisPriorityQueue()
        await queue.push(JobPriority.HIGH, job_id)
        job_id = await queue.pop()   # None when empty
    """

    def __init__(
        self,
        redis: Optional[Redis] = None,
        key: Optional[str] = None,
        sequence_key: Optional[str] = None
    ):
        self._redis = redis
        self.key = key or config.QUEUE_KEY
        self.sequence_key = sequence_key or config.QUEUE_SEQUENCE_KEY

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_async_redis()
        return self._redis

    async def push(self, priority: JobPriority | str, job_id: str) -> None:
        """Insert a job id, preserving priority + FIFO order."""
        sequence = await self.redis.incr(self.sequence_key)
        await self.redis.zadd(self.key, {job_id: queue_score(priority, sequence)})

    async def pop(self) -> Optional[str]:
        """Remove and return the next job id, or None if the queue is empty."""
        popped = await self.redis.zpopmin(self.key, 1)
        if not popped:
            return None
        member, _score = popped[0]
        return member.decode() if isinstance(member, bytes) else member

    async def contains(self, job_id: str) -> bool:
        return await self.redis.zscore(self.key, job_id) is not None

    async def size(self) -> int:
        return await self.redis.zcard(self.key)


# Global queue instance (created on first use)
_queue_instance: Optional[RedisPriorityQueue] = None


def get_priority_queue() -> RedisPriorityQueue:
    """Get or create the global queue instance."""
    global _queue_instance

    if _queue_instance is None:
        _queue_instance = RedisPriorityQueue()

    return _queue_instance
