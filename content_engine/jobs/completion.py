"""
Completion receiver for asynchronous provider tasks.

Both the provider webhook and the stale-job poll feed notifications
through CompletionReceiver.handle(), which correlates the task id to its
job and moves the job to its terminal state exactly once.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator

from content_engine.database.jobs import JobService, JobStatus, TERMINAL_STATUSES
from content_engine.errors import UnmatchedCompletion
from content_engine.jobs.assets import AssetMaterializer
from content_engine.providers.image import ImageTask
from content_engine.utils.logging import webhook_logger as logger


SUCCESS_STATUSES = frozenset({"finished", "completed", "succeeded", "success", "done"})
FAILURE_STATUSES = frozenset({"failed", "error", "canceled", "cancelled"})


def _first_present(data: dict, *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


class CompletionNotification(BaseModel):
    """
    Normalised provider notification.

    Accepts the field names used by the providers we talk to:
    taskId / task_id / id, resultUrls / result_urls / image_urls / output,
    and message / error.
    """

    task_id: str = Field(min_length=1)
    status: str = ""
    result_urls: List[str] = Field(default_factory=list)
    message: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalise_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        urls = _first_present(data, "result_urls", "resultUrls", "image_urls", "output")
        if isinstance(urls, str):
            urls = [urls]
        elif not isinstance(urls, (list, tuple)):
            urls = []

        message = _first_present(data, "message", "error")
        task_id = _first_present(data, "task_id", "taskId", "id")

        return {
            "task_id": str(task_id) if task_id is not None else None,
            "status": str(data.get("status") or "").strip().lower(),
            "result_urls": [str(url) for url in urls if url],
            "message": str(message) if message else None,
        }

    @classmethod
    def from_task(cls, task: ImageTask) -> "CompletionNotification":
        """Build a notification from a polled provider task."""
        return cls(
            task_id=task.task_id,
            status=task.status,
            result_urls=task.result_urls,
            message=task.error,
        )

    @property
    def succeeded(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def failed(self) -> bool:
        return self.status in FAILURE_STATUSES


@dataclass
class CompletionOutcome:
    matched: bool
    job_id: Optional[str] = None
    status: Optional[str] = None


class CompletionReceiver:
    """
    Applies provider notifications to job records.

    Idempotent: repeated or late notifications for a terminal job are
    acknowledged without any change, and assets for a task are written at
    most once.

    Usage:
        receiver = CompletionReceiver()
        outcome = await receiver.handle(CompletionNotification(**body))
    """

    def __init__(
        self,
        job_service: Optional[JobService] = None,
        materializer: Optional[AssetMaterializer] = None
    ):
        self.jobs = job_service or JobService()
        self.materializer = materializer or AssetMaterializer()

    async def handle(self, notification: CompletionNotification) -> CompletionOutcome:
        """
        Raises:
            AssetPersistenceError: if result assets cannot be stored; the
                job is left processing so a redelivery can retry
        """
        task_id = notification.task_id

        job = await self.jobs.get_job_by_provider_task(task_id)
        if job is None:
            logger.warning(str(UnmatchedCompletion(task_id)), status=notification.status)
            return CompletionOutcome(matched=False)

        job_id = job["job_id"]
        current_status = job.get("status")

        if current_status in {s.value for s in TERMINAL_STATUSES}:
            logger.info(
                "Duplicate notification for finished job ignored",
                job_id=job_id,
                task_id=task_id,
                status=current_status
            )
            return CompletionOutcome(matched=True, job_id=job_id, status=current_status)

        if notification.succeeded and notification.result_urls:
            return await self._complete(job, notification)

        if notification.succeeded or notification.failed:
            error_message = notification.message or (
                "Provider reported success without any result URLs"
                if notification.succeeded
                else f"Provider reported status '{notification.status}'"
            )
            updated = await self.jobs.mark_failed(
                job_id,
                error_message,
                from_statuses=[JobStatus.PROCESSING]
            )
            logger.warning(
                f"Provider task failed: {error_message}",
                job_id=job_id,
                task_id=task_id
            )
            return CompletionOutcome(
                matched=True,
                job_id=job_id,
                status=JobStatus.FAILED.value if updated else current_status
            )

        logger.info(
            "Intermediate provider status acknowledged",
            job_id=job_id,
            task_id=task_id,
            status=notification.status
        )
        return CompletionOutcome(matched=True, job_id=job_id, status=current_status)

    async def _complete(self, job: dict, notification: CompletionNotification) -> CompletionOutcome:
        job_id = job["job_id"]
        urls = notification.result_urls
        payload = job.get("payload") or {}

        assets = await self.materializer.materialize(
            job,
            notification.task_id,
            urls,
            provider=payload.get("provider")
        )

        result = {
            "image_url": urls[0],
            "image_urls": urls,
            "asset_ids": [asset["id"] for asset in assets],
        }

        updated = await self.jobs.mark_completed(job_id, result)
        if updated is None:
            logger.info("Job already finished before completion was applied", job_id=job_id)
            return CompletionOutcome(matched=True, job_id=job_id, status=job.get("status"))

        logger.info(
            "Job completed from provider notification",
            job_id=job_id,
            task_id=notification.task_id,
            images=len(urls)
        )
        return CompletionOutcome(matched=True, job_id=job_id, status=JobStatus.COMPLETED.value)
