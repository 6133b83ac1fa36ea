"""
Job producer.

Accepts generation requests, writes the job record and queues its id.
Callers get an acknowledgment back immediately; they never wait for the
job itself.
"""

from typing import Dict, Any, Optional, Tuple

from content_engine.database.jobs import (
    JobService,
    JobStatus,
    JobType,
    JobPriority,
    generate_job_id,
)
from content_engine.errors import ValidationError
from content_engine.jobs.queue import PriorityQueue, get_priority_queue
from content_engine.utils.logging import job_logger as logger


# Payload fields that must be present (and non-empty) per job type
REQUIRED_FIELDS: Dict[JobType, Tuple[str, ...]] = {
    JobType.CONTENT_GENERATION: ("prompt",),
    JobType.CONTENT_OPTIMIZATION: ("prompt", "original_content"),
    JobType.IMAGE_GENERATION: ("prompt", "project_id"),
}


def validate_request(
    job_type: Any,
    payload: Any,
    priority: Optional[Any] = None
) -> Tuple[str, Dict[str, Any], JobPriority]:
    """
    Check a producer request and normalise it.

    Unknown job types are accepted here; the worker fails them with
    UnknownJobType so that they remain visible as job records.

    Raises:
        ValidationError: on any missing or malformed field
    """
    if not isinstance(job_type, str) or not job_type.strip():
        raise ValidationError("Missing required field: type", ["type"])

    if not isinstance(payload, dict):
        raise ValidationError("payload must be an object", ["payload"])

    try:
        resolved_priority = JobPriority(priority or JobPriority.MEDIUM)
    except ValueError:
        raise ValidationError(
            f"Invalid priority '{priority}'. Use one of: high, medium, low"
        )

    job_type = job_type.strip()
    try:
        required = REQUIRED_FIELDS[JobType(job_type)]
    except ValueError:
        required = ()

    missing = [
        field for field in required
        if payload.get(field) is None or (isinstance(payload.get(field), str) and not payload[field].strip())
    ]
    if missing:
        raise ValidationError(
            f"Missing required fields for {job_type}: {', '.join(missing)}",
            missing
        )

    return job_type, payload, resolved_priority


class JobProducer:
    """
    Turns an inbound request into exactly one job record and one queue entry.

    Usage:
        producer = JobProducer()
        ack = await producer.submit("content-generation", {"prompt": "..."}, "high")
        # {"job_id": "job_...", "status": "queued"}
    """

    def __init__(
        self,
        job_service: Optional[JobService] = None,
        queue: Optional[PriorityQueue] = None
    ):
        self.jobs = job_service or JobService()
        self._queue = queue

    @property
    def queue(self) -> PriorityQueue:
        if self._queue is None:
            self._queue = get_priority_queue()
        return self._queue

    async def submit(
        self,
        job_type: Any,
        payload: Any,
        priority: Optional[Any] = None
    ) -> Dict[str, Any]:
        """
        Validate, record and enqueue a job.

        Record creation and enqueue are one logical unit: if the push
        fails the record is failed straight away so it cannot linger as
        an unreachable queued job. If even that fails, the orphan sweep
        picks it up later.
        """
        job_type, payload, resolved_priority = validate_request(job_type, payload, priority)
        job_id = generate_job_id()

        await self.jobs.create_job(
            job_id=job_id,
            job_type=job_type,
            payload=payload,
            priority=resolved_priority,
        )

        try:
            await self.queue.push(resolved_priority, job_id)
        except Exception as e:
            logger.error(f"Enqueue failed: {e}", job_id=job_id)
            try:
                await self.jobs.mark_failed(
                    job_id,
                    error_message=f"Failed to enqueue job: {e}",
                    from_statuses=[JobStatus.QUEUED],
                )
            except Exception as mark_error:
                logger.error(
                    "Could not fail unqueued job, leaving it for the orphan sweep",
                    job_id=job_id,
                    error=str(mark_error)
                )
            raise

        logger.info(
            "Job queued",
            job_id=job_id,
            type=job_type,
            priority=resolved_priority.value
        )

        return {"job_id": job_id, "status": JobStatus.QUEUED.value}
