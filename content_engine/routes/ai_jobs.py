"""
AI Job API Routes

Submit generation jobs and check on them. Submission only records and
queues the job; callers poll GET /api/ai/jobs/{job_id} for the outcome.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from content_engine.database.client import SupabaseClientError
from content_engine.database.jobs import JobService
from content_engine.errors import ValidationError
from content_engine.jobs.producer import JobProducer
from content_engine.jobs.queue import PriorityQueue, get_priority_queue
from content_engine.security import require_auth
from content_engine.utils.logging import api_logger as logger

router = APIRouter(prefix="/api/ai", tags=["ai-jobs"], dependencies=[require_auth])


# =============================================================================
# Dependencies
# =============================================================================

def get_job_service() -> JobService:
    return JobService()


def get_queue() -> PriorityQueue:
    return get_priority_queue()


def get_job_producer(
    job_service: JobService = Depends(get_job_service),
    queue: PriorityQueue = Depends(get_queue)
) -> JobProducer:
    return JobProducer(job_service=job_service, queue=queue)


# =============================================================================
# Request Models
# =============================================================================

class CreateJobRequest(BaseModel):
    """Loose on purpose: the producer does the validation and reports 400s."""
    type: Any = None
    payload: Any = None
    priority: Any = None


def serialize_job(job: Dict[str, Any]) -> Dict[str, Any]:
    """Public view of a job record."""
    data = {
        "jobId": job["job_id"],
        "type": job.get("type"),
        "priority": job.get("priority"),
        "status": job.get("status"),
        "created_at": job.get("created_at"),
        "started_at": job.get("started_at"),
        "completed_at": job.get("completed_at"),
        "failed_at": job.get("failed_at"),
    }
    if job.get("result") is not None:
        data["result"] = job["result"]
    if job.get("error_message"):
        data["error"] = job["error_message"]
    return data


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/jobs", status_code=202)
async def create_job(
    request: CreateJobRequest,
    producer: JobProducer = Depends(get_job_producer)
):
    """
    Queue an AI generation job.

    Returns immediately with the job id; the job runs in the background.
    """
    try:
        ack = await producer.submit(request.type, request.payload, request.priority)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SupabaseClientError as e:
        logger.error(f"Job store unavailable: {e}")
        raise HTTPException(status_code=503, detail="Job store is not configured")
    except Exception as e:
        logger.error(f"Failed to queue job: {e}", type=request.type)
        raise HTTPException(status_code=500, detail=f"Failed to queue job: {e}")

    return {"jobId": ack["job_id"], "status": ack["status"]}


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    job_service: JobService = Depends(get_job_service)
):
    """Get the current state of a job."""
    job = await job_service.get_job_by_id(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")

    return serialize_job(job)


@router.get("/queue-stats")
async def get_queue_stats(
    job_service: JobService = Depends(get_job_service),
    queue: PriorityQueue = Depends(get_queue)
):
    """Queue depth plus job counts by status."""
    try:
        queued_entries: Optional[int] = await queue.size()
    except Exception as e:
        logger.warning(f"Could not read queue size: {e}")
        queued_entries = None

    return {
        "queued_entries": queued_entries,
        "by_status": await job_service.get_queue_stats(),
    }
