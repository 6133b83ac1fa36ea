"""
Job Record Service

Durable lifecycle state for AI jobs, stored in the Supabase `ai_jobs`
table. Every status transition is a conditional update that names the
statuses it may leave from, so a terminal job is never overwritten.
"""

import random
import string
import time
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Optional, Dict, Any, List, Iterable

from supabase import Client

from content_engine.config import config
from .client import get_supabase_admin_client


class JobStatus(str, Enum):
    """Status values for AI jobs"""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class JobType(str, Enum):
    """Job types with a registered generation strategy"""
    CONTENT_GENERATION = "content-generation"
    CONTENT_OPTIMIZATION = "content-optimization"
    IMAGE_GENERATION = "image-generation"


class JobPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Dequeue rank: lower ranks are served first."""
        return {"high": 1, "medium": 2, "low": 3}[self.value]


def generate_job_id() -> str:
    """Time-based id with a random suffix, e.g. job_1729300000000_k3j9x0a1b."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"job_{int(time.time() * 1000)}_{suffix}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _statuses(values: Iterable[JobStatus]) -> List[str]:
    return [JobStatus(v).value for v in values]


class JobService:
    """
    Service class for AI job records.

    Uses Supabase for persistence, providing:
    - Conditional (compare-and-set) status transitions
    - Write-once provider task correlation
    - Queries used by the orphan sweep and dashboards
    """

    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        self._client = client
        self.table = table or config.JOBS_TABLE

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    # =========================================================================
    # Job Creation
    # =========================================================================

    async def create_job(
        self,
        job_id: str,
        job_type: str,
        payload: Dict[str, Any],
        priority: JobPriority,
    ) -> Dict[str, Any]:
        """
        Create a new job record in the queued state.

        Owner identifiers are copied out of the payload so jobs can be
        filtered by project without unpacking JSON.
        """
        job_data = {
            "job_id": job_id,
            "type": job_type,
            "payload": payload,
            "priority": JobPriority(priority).value,
            "status": JobStatus.QUEUED.value,
            "project_id": payload.get("project_id"),
            "user_id": payload.get("user_id"),
            "organization_id": payload.get("organization_id"),
            "created_at": _now(),
        }

        result = self.client.table(self.table).insert(job_data).execute()
        return result.data[0]

    # =========================================================================
    # Job Retrieval
    # =========================================================================

    async def get_job_by_id(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get a job by its job_id."""
        result = (
            self.client.table(self.table)
            .select("*")
            .eq("job_id", job_id)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_job_by_provider_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Resolve a provider task id back to the job that submitted it."""
        result = (
            self.client.table(self.table)
            .select("*")
            .eq("provider_task_id", task_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_stale_jobs(
        self,
        status: JobStatus,
        older_than_minutes: int,
        job_type: Optional[JobType] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """
        Jobs that have sat in `status` for longer than the cutoff.

        Queued jobs are aged by created_at, processing jobs by started_at.
        """
        cutoff = (datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)).isoformat()
        age_column = "started_at" if status == JobStatus.PROCESSING else "created_at"

        query = (
            self.client.table(self.table)
            .select("*")
            .eq("status", JobStatus(status).value)
            .lt(age_column, cutoff)
            .order(age_column)
            .limit(limit)
        )
        if job_type is not None:
            query = query.eq("type", JobType(job_type).value)

        result = query.execute()
        return result.data

    async def get_recent_jobs(
        self,
        project_id: Optional[str] = None,
        limit: int = 20
    ) -> List[Dict[str, Any]]:
        """Get recent jobs, optionally filtered by project."""
        query = (
            self.client.table(self.table)
            .select("job_id, type, priority, status, error_message, created_at, started_at, completed_at, failed_at, project_id")
            .order("created_at", desc=True)
            .limit(limit)
        )

        if project_id:
            query = query.eq("project_id", project_id)

        result = query.execute()
        return result.data

    # =========================================================================
    # Job Status Updates
    # =========================================================================

    async def _transition(
        self,
        job_id: str,
        update_data: Dict[str, Any],
        from_statuses: Iterable[JobStatus],
    ) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table(self.table)
            .update(update_data)
            .eq("job_id", job_id)
            .in_("status", _statuses(from_statuses))
            .execute()
        )
        return result.data[0] if result.data else None

    async def mark_processing(self, job_id: str) -> Optional[Dict[str, Any]]:
        """
        Claim a queued job for processing.

        Returns None if the job is no longer queued (already claimed,
        or failed by the producer's compensation path).
        """
        return await self._transition(
            job_id,
            {"status": JobStatus.PROCESSING.value, "started_at": _now()},
            from_statuses=[JobStatus.QUEUED],
        )

    async def attach_provider_task(
        self,
        job_id: str,
        task_id: str,
        provider: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Record the provider's task id on a processing job.

        The column is only written while still NULL, making the
        task → job mapping write-once.
        """
        job = await self.get_job_by_id(job_id)
        if not job:
            return None

        payload = dict(job.get("payload") or {})
        payload["provider_task_id"] = task_id
        payload["provider"] = provider
        if metadata:
            payload["provider_metadata"] = metadata

        result = (
            self.client.table(self.table)
            .update({"provider_task_id": task_id, "payload": payload})
            .eq("job_id", job_id)
            .eq("status", JobStatus.PROCESSING.value)
            .is_("provider_task_id", "null")
            .execute()
        )
        return result.data[0] if result.data else None

    async def mark_completed(
        self,
        job_id: str,
        result: Dict[str, Any],
        from_statuses: Iterable[JobStatus] = (JobStatus.PROCESSING,)
    ) -> Optional[Dict[str, Any]]:
        """Mark a job as completed with its result."""
        return await self._transition(
            job_id,
            {
                "status": JobStatus.COMPLETED.value,
                "result": result,
                "error_message": None,
                "completed_at": _now(),
            },
            from_statuses=from_statuses,
        )

    async def mark_failed(
        self,
        job_id: str,
        error_message: str,
        from_statuses: Iterable[JobStatus] = (JobStatus.QUEUED, JobStatus.PROCESSING)
    ) -> Optional[Dict[str, Any]]:
        """Mark a job as failed. Never overwrites a terminal state."""
        return await self._transition(
            job_id,
            {
                "status": JobStatus.FAILED.value,
                "error_message": error_message,
                "result": None,
                "failed_at": _now(),
            },
            from_statuses=from_statuses,
        )

    # =========================================================================
    # Admin/Dashboard Queries
    # =========================================================================

    async def get_queue_stats(self) -> Dict[str, Any]:
        """Get job counts by status for the dashboard."""
        all_jobs = (
            self.client.table(self.table)
            .select("status")
            .execute()
        )

        status_counts = {status.value: 0 for status in JobStatus}

        for job in all_jobs.data:
            status = job.get("status")
            if status in status_counts:
                status_counts[status] += 1

        return {
            "total": len(all_jobs.data),
            **status_counts,
        }
