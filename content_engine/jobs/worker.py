"""
Background worker for AI generation jobs.

Pops job ids from the priority queue and runs the matching generation
strategy. Synchronous strategies finish inside the worker; the image
strategy only submits to the provider and leaves the job processing until
the completion webhook (or the stale-job sweep) closes it.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from content_engine.config import config
from content_engine.database.jobs import JobService, JobStatus, JobType
from content_engine.errors import ProviderError, UnknownJobType
from content_engine.jobs.queue import PriorityQueue, get_priority_queue
from content_engine.jobs.strategies import (
    AsyncHandle,
    GenerationStrategy,
    build_strategies,
    resolve_strategy,
)
from content_engine.utils.logging import worker_logger as logger


@dataclass(frozen=True)
class WorkerPolicy:
    """Loop timing, in seconds."""
    poll_interval: float = 5.0
    failure_backoff: float = 10.0

    @classmethod
    def from_config(cls) -> "WorkerPolicy":
        return cls(
            poll_interval=config.WORKER_POLL_INTERVAL,
            failure_backoff=config.WORKER_FAILURE_BACKOFF,
        )


SleepFunc = Callable[[float], Awaitable[None]]


class AIJobWorker:
    """
    Long-running consumer of the AI job queue.

    One job at a time per worker; run several processes to scale out.
    The queue pop is atomic, so two workers never receive the same id.

    Args:
        job_service: Job record store
        queue: Priority queue of job ids
        strategies: Registry of generation strategies by JobType
        policy: Poll interval and failure backoff
        sleep: Replacement for the interruptible wait (tests pass a fake)
    """

    def __init__(
        self,
        job_service: Optional[JobService] = None,
        queue: Optional[PriorityQueue] = None,
        strategies: Optional[Dict[JobType, GenerationStrategy]] = None,
        policy: Optional[WorkerPolicy] = None,
        sleep: Optional[SleepFunc] = None
    ):
        self.jobs = job_service or JobService()
        self._queue = queue
        self._strategies = strategies
        self.policy = policy or WorkerPolicy.from_config()
        self._sleep = sleep

        self._shutdown = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._is_processing = False
        self._current_job_id: Optional[str] = None
        self._last_job_failed = False

    @property
    def queue(self) -> PriorityQueue:
        if self._queue is None:
            self._queue = get_priority_queue()
        return self._queue

    @property
    def strategies(self) -> Dict[JobType, GenerationStrategy]:
        if self._strategies is None:
            self._strategies = build_strategies()
        return self._strategies

    # =========================================================================
    # Loop
    # =========================================================================

    async def run(self):
        """Process jobs until request_shutdown() is called."""
        logger.info(
            "AI job worker started",
            poll_interval=self.policy.poll_interval,
            failure_backoff=self.policy.failure_backoff
        )

        while not self._shutdown.is_set():
            try:
                job_id = await self.run_once()
            except Exception as e:
                logger.error(f"Worker loop error: {e}", job_id=self._current_job_id)
                await self._wait(self.policy.failure_backoff)
                continue

            if job_id is None:
                await self._wait(self.policy.poll_interval)
            elif self._last_job_failed:
                await self._wait(self.policy.failure_backoff)

        logger.info("AI job worker stopped")

    async def run_once(self) -> Optional[str]:
        """
        Pop and process a single job.

        Returns:
            The popped job id, or None if the queue was empty
        """
        job_id = await self.queue.pop()
        if job_id is None:
            return None

        self._is_processing = True
        self._current_job_id = job_id
        self._last_job_failed = False
        try:
            self._last_job_failed = await self.process_job(job_id)
        finally:
            self._is_processing = False
            self._current_job_id = None

        return job_id

    async def _wait(self, seconds: float):
        if self._sleep is not None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def request_shutdown(self):
        """Stop after the in-flight job; no further pops are started."""
        self._shutdown.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    # =========================================================================
    # Job Processing
    # =========================================================================

    async def process_job(self, job_id: str) -> bool:
        """
        Run one job to its next resting state.

        Known failures (unknown type, provider error) fail the job and
        return True so the loop backs off before the next pop. Anything
        else fails the job and is re-raised.

        Returns:
            True if the job was marked failed
        """
        job = await self.jobs.get_job_by_id(job_id)
        if job is None:
            logger.warning("Orphaned queue entry: no job record, skipping", job_id=job_id)
            return False

        if job.get("status") != JobStatus.QUEUED.value:
            logger.warning(
                "Job is not queued, skipping duplicate delivery",
                job_id=job_id,
                status=job.get("status")
            )
            return False

        claimed = await self.jobs.mark_processing(job_id)
        if claimed is None:
            logger.warning("Job was claimed elsewhere, skipping", job_id=job_id)
            return False
        job = {**job, **claimed}

        logger.info("Processing job", job_id=job_id, type=job.get("type"))

        try:
            strategy = resolve_strategy(self.strategies, job.get("type"))
            outcome = await strategy.execute(job)
        except (UnknownJobType, ProviderError) as e:
            logger.error(f"Job failed: {e}", job_id=job_id, type=job.get("type"))
            await self.jobs.mark_failed(job_id, str(e), from_statuses=[JobStatus.PROCESSING])
            return True
        except Exception as e:
            await self._fail_unexpected(job_id, e)
            raise

        try:
            if isinstance(outcome, AsyncHandle):
                await self._record_submission(job_id, outcome)
            else:
                await self._record_result(job_id, job.get("type"), outcome.result)
        except Exception as e:
            await self._fail_unexpected(job_id, e)
            raise

        return False

    async def _record_result(self, job_id: str, job_type: Optional[str], result: Dict[str, Any]):
        completed = await self.jobs.mark_completed(job_id, result)
        if completed is None:
            # The sweeper failed it as abandoned while the provider was working
            logger.warning(
                "Result discarded; job is no longer processing",
                job_id=job_id,
                type=job_type
            )
            return

        logger.info("Job completed", job_id=job_id, type=job_type)

    async def _record_submission(self, job_id: str, handle: AsyncHandle):
        attached = await self.jobs.attach_provider_task(
            job_id,
            handle.task_id,
            handle.provider,
            handle.metadata
        )
        if attached is None:
            # Completion may already have landed, or the task id was set before
            logger.warning(
                "Provider task not attached; job is no longer awaiting submission",
                job_id=job_id,
                task_id=handle.task_id
            )
            return

        logger.info(
            "Job submitted to provider",
            job_id=job_id,
            provider=handle.provider,
            task_id=handle.task_id
        )

    async def _fail_unexpected(self, job_id: str, error: Exception):
        try:
            await self.jobs.mark_failed(
                job_id,
                f"Unexpected error: {error}",
                from_statuses=[JobStatus.PROCESSING]
            )
        except Exception as mark_error:
            logger.error(
                "Could not mark job failed",
                job_id=job_id,
                error=str(mark_error)
            )

    # =========================================================================
    # Lifecycle (in-process)
    # =========================================================================

    def start(self) -> asyncio.Task:
        """Run the loop as a task on the current event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        """Request shutdown and wait for the in-flight job to finish."""
        self.request_shutdown()
        if self._task is not None:
            await self._task
            self._task = None

    @property
    def is_processing(self) -> bool:
        """Check if worker is currently processing a job"""
        return self._is_processing

    @property
    def current_job(self) -> Optional[str]:
        """Get the ID of the currently processing job"""
        return self._current_job_id

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._task is not None and not self._task.done(),
            "is_processing": self._is_processing,
            "current_job": self._current_job_id,
            "shutdown_requested": self.shutdown_requested,
        }


# Global worker instance
_worker_instance: Optional[AIJobWorker] = None


async def start_ai_worker(policy: Optional[WorkerPolicy] = None) -> AIJobWorker:
    """
    Start the AI job worker inside the current process.
    Call this during FastAPI startup.
    """
    global _worker_instance

    if _worker_instance is None:
        _worker_instance = AIJobWorker(policy=policy)
        _worker_instance.start()

    return _worker_instance


async def stop_ai_worker():
    """
    Stop the in-process AI job worker.
    Call this during FastAPI shutdown.
    """
    global _worker_instance

    if _worker_instance is not None:
        await _worker_instance.stop()
        _worker_instance = None


def get_worker() -> Optional[AIJobWorker]:
    """Get the current worker instance (for status checks)"""
    return _worker_instance
