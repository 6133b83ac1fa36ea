"""
Periodic reconciliation of job records against the queue and provider.

Three things can leave a job stuck without anyone noticing:
- the record was written but its queue entry was lost (Redis flush,
  enqueue failure after a failed compensation)
- an image job was submitted but the provider's webhook never arrived
- a worker died while a job was processing
The reconciler runs on an APScheduler interval and repairs each case.
"""

from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from content_engine.config import config
from content_engine.database.jobs import JobPriority, JobService, JobStatus, JobType
from content_engine.errors import OrphanedJob
from content_engine.jobs.completion import CompletionNotification, CompletionReceiver
from content_engine.jobs.queue import PriorityQueue, get_priority_queue
from content_engine.providers.image import ImageGenerationClient
from content_engine.utils.logging import job_logger as logger


class JobReconciler:
    """
    Orphan sweeper for AI jobs.

    Args:
        job_service: Job record store
        queue: Priority queue of job ids
        image_client: Provider client used to poll stale image tasks
        receiver: Completion receiver that applies polled results
        interval_seconds: Sweep period
        orphan_timeout_minutes: Age after which a queued job must be in the queue
        stale_processing_minutes: Age after which a processing job is checked
    """

    def __init__(
        self,
        job_service: Optional[JobService] = None,
        queue: Optional[PriorityQueue] = None,
        image_client: Optional[ImageGenerationClient] = None,
        receiver: Optional[CompletionReceiver] = None,
        interval_seconds: Optional[int] = None,
        orphan_timeout_minutes: Optional[int] = None,
        stale_processing_minutes: Optional[int] = None
    ):
        self.jobs = job_service or JobService()
        self._queue = queue
        self._image_client = image_client
        self._receiver = receiver

        self.interval = interval_seconds or config.SWEEP_INTERVAL_SECONDS
        self.orphan_timeout = orphan_timeout_minutes or config.ORPHAN_TIMEOUT_MINUTES
        self.stale_processing = stale_processing_minutes or config.STALE_PROCESSING_MINUTES

        self.scheduler = AsyncIOScheduler()
        self._is_sweeping = False
        self._running = False

    @property
    def queue(self) -> PriorityQueue:
        if self._queue is None:
            self._queue = get_priority_queue()
        return self._queue

    @property
    def image_client(self) -> ImageGenerationClient:
        if self._image_client is None:
            self._image_client = ImageGenerationClient()
        return self._image_client

    @property
    def receiver(self) -> CompletionReceiver:
        if self._receiver is None:
            self._receiver = CompletionReceiver(job_service=self.jobs)
        return self._receiver

    # =========================================================================
    # Sweeps
    # =========================================================================

    async def sweep_orphans(self) -> int:
        """Re-enqueue old queued jobs that have no queue entry. Returns the count."""
        stale = await self.jobs.get_stale_jobs(JobStatus.QUEUED, self.orphan_timeout)
        requeued = 0

        for job in stale:
            job_id = job["job_id"]
            try:
                if await self.queue.contains(job_id):
                    continue

                logger.warning(str(OrphanedJob(job_id, "queued record has no queue entry")))
                await self.queue.push(job.get("priority") or JobPriority.MEDIUM, job_id)
                requeued += 1
            except Exception as e:
                logger.error(f"Failed to re-enqueue orphaned job: {e}", job_id=job_id)

        if requeued:
            logger.info("Orphaned jobs re-enqueued", count=requeued)
        return requeued

    async def poll_stale_image_jobs(self) -> Dict[str, int]:
        """
        Ask the provider about image jobs whose webhook is overdue.

        Results go through the same CompletionReceiver as the webhook.
        Jobs that never recorded a provider task cannot complete and are
        failed.
        """
        stale = await self.jobs.get_stale_jobs(
            JobStatus.PROCESSING,
            self.stale_processing,
            job_type=JobType.IMAGE_GENERATION
        )
        counts = {"polled": 0, "failed": 0}

        for job in stale:
            job_id = job["job_id"]
            task_id = job.get("provider_task_id")

            try:
                if not task_id:
                    await self.jobs.mark_failed(
                        job_id,
                        "Image job has no provider task; submission was never recorded",
                        from_statuses=[JobStatus.PROCESSING]
                    )
                    counts["failed"] += 1
                    continue

                task = await self.image_client.fetch(task_id)
                await self.receiver.handle(CompletionNotification.from_task(task))
                counts["polled"] += 1
            except Exception as e:
                logger.error(f"Stale image job poll failed: {e}", job_id=job_id, task_id=task_id)

        return counts

    async def fail_abandoned_jobs(self) -> int:
        """Fail synchronous jobs left processing by a worker that went away."""
        stale = await self.jobs.get_stale_jobs(JobStatus.PROCESSING, self.stale_processing)
        failed = 0

        for job in stale:
            if job.get("type") == JobType.IMAGE_GENERATION.value:
                continue
            try:
                updated = await self.jobs.mark_failed(
                    job["job_id"],
                    f"Job abandoned: still processing after {self.stale_processing} minutes",
                    from_statuses=[JobStatus.PROCESSING]
                )
            except Exception as e:
                logger.error(f"Failed to fail abandoned job: {e}", job_id=job["job_id"])
                continue
            if updated:
                failed += 1

        if failed:
            logger.warning("Abandoned jobs failed", count=failed)
        return failed

    async def run_sweep(self) -> Dict[str, Any]:
        """Run every sweep once. Skips if a previous sweep is still running."""
        if self._is_sweeping:
            return {"skipped": True}

        self._is_sweeping = True
        try:
            return {
                "requeued": await self.sweep_orphans(),
                "image_jobs": await self.poll_stale_image_jobs(),
                "abandoned": await self.fail_abandoned_jobs(),
            }
        except Exception as e:
            logger.error(f"Sweep failed: {e}")
            return {"error": str(e)}
        finally:
            self._is_sweeping = False

    # =========================================================================
    # Scheduling
    # =========================================================================

    def start(self):
        """Start the periodic sweep on the running event loop."""
        self.scheduler.add_job(
            self.run_sweep,
            trigger=IntervalTrigger(seconds=self.interval),
            id="ai_job_sweep",
            name="Reconcile AI job records",
            replace_existing=True,
            max_instances=1
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            "Job reconciler started",
            interval=self.interval,
            orphan_timeout=self.orphan_timeout,
            stale_processing=self.stale_processing
        )

    def stop(self):
        """Stop the periodic sweep."""
        self._running = False
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Job reconciler stopped")

    @property
    def running(self) -> bool:
        return self._running
