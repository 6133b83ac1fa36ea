"""
Content engine database layer

Supabase client and the service classes for job records and assets.
"""

from .client import get_supabase_admin_client, SupabaseClientError
from .jobs import (
    JobService,
    JobStatus,
    JobType,
    JobPriority,
    TERMINAL_STATUSES,
    generate_job_id,
)
from .assets import AssetService, AssetNotFoundError, TransferStatus

__all__ = [
    "get_supabase_admin_client",
    "SupabaseClientError",
    "JobService",
    "JobStatus",
    "JobType",
    "JobPriority",
    "TERMINAL_STATUSES",
    "generate_job_id",
    "AssetService",
    "AssetNotFoundError",
    "TransferStatus",
]
