"""
RQ task definitions.

Asset transfers can run on a dedicated RQ worker instead of inside the
web process (ASSET_TRANSFER_BACKEND=rq). The task body is the same
AssetTransferService used by the in-process dispatcher.
"""

import asyncio
from typing import Any, Dict, Optional

from rq import Retry
from rq.job import Job

from .connection import get_transfer_queue


# =============================================================================
# ASSET TRANSFER TASK
# =============================================================================

def transfer_asset_task(
    asset_id: str,
    source_url: str,
    project_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    RQ task for moving one asset to permanent storage.

    Args:
        asset_id: Asset row id
        source_url: Provider URL the asset currently points at
        project_id: Owning project (used in the storage path)

    Returns:
        Dict with the asset id and whether the transfer succeeded
    """
    # Run async code in sync context (RQ workers are sync)
    transferred = asyncio.run(_transfer_asset_async(asset_id, source_url, project_id))
    return {"asset_id": asset_id, "transferred": transferred}


async def _transfer_asset_async(
    asset_id: str,
    source_url: str,
    project_id: Optional[str]
) -> bool:
    from content_engine.jobs.assets import AssetTransferService

    return await AssetTransferService().transfer(asset_id, source_url, project_id)


# =============================================================================
# QUEUE HELPERS
# =============================================================================

def enqueue_asset_transfer(
    asset_id: str,
    source_url: str,
    project_id: Optional[str] = None
) -> Job:
    """
    Enqueue an asset transfer on the transfers queue.

    Returns:
        RQ Job instance
    """
    queue = get_transfer_queue()

    return queue.enqueue(
        transfer_asset_task,
        asset_id,
        source_url,
        project_id,
        job_id=f"transfer_{asset_id}",  # one live transfer per asset
        job_timeout="5m",
        result_ttl=86400,  # Keep results for 24 hours
        failure_ttl=604800,  # Keep failed jobs for 7 days
        retry=Retry(max=3, interval=[30, 120, 300]),
    )
