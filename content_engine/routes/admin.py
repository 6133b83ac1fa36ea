"""
Admin API Routes

Operator views of the pipeline:
- Recent jobs and failures
- Worker status
- Error logs from the in-memory buffer
- Manual reconciliation sweep
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from content_engine.config import config
from content_engine.database.jobs import JobService
from content_engine.jobs.reconciler import JobReconciler
from content_engine.jobs.worker import get_worker
from content_engine.security import require_auth
from content_engine.utils.logging import LogLevel, get_log_buffer, get_logger

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[require_auth])
logger = get_logger("admin")


# ===== Jobs =====

@router.get("/jobs")
async def get_recent_jobs(
    limit: int = Query(20, ge=1, le=200),
    project_id: Optional[str] = Query(None)
):
    """Get recent jobs, newest first."""
    try:
        jobs = await JobService().get_recent_jobs(project_id=project_id, limit=limit)
    except Exception as e:
        logger.error(f"Failed to fetch jobs: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return {"jobs": jobs, "count": len(jobs)}


@router.post("/sweep")
async def run_sweep():
    """Run one reconciliation sweep now."""
    logger.info("Manual sweep requested")
    result = await JobReconciler().run_sweep()
    return {"result": result, "timestamp": datetime.now(timezone.utc).isoformat()}


# ===== Worker =====

@router.get("/worker")
async def get_worker_status():
    """Status of the in-process worker, if this process runs one."""
    worker = get_worker()
    if worker is None:
        return {
            "enabled": config.ENABLE_AI_WORKER,
            "running": False,
        }

    return {"enabled": config.ENABLE_AI_WORKER, **worker.status()}


# ===== Logs =====

@router.get("/logs")
async def get_logs(
    limit: int = Query(100, ge=1, le=500),
    level: Optional[str] = Query(None, description="Filter by level (debug, info, warning, error, critical)"),
    source: Optional[str] = Query(None, description="Filter by source (job_queue, worker, webhook, transfer, api)"),
    job_id: Optional[str] = Query(None, description="Only entries logged for this job")
):
    """Get recent log entries from the in-memory buffer."""
    log_buffer = get_log_buffer()

    level_filter = None
    if level:
        try:
            level_filter = LogLevel(level.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid log level: {level}")

    return {
        "logs": log_buffer.get_recent(limit=limit, level=level_filter, source=source, job_id=job_id),
        "stats": log_buffer.get_stats()
    }


@router.get("/logs/errors")
async def get_error_logs(limit: int = Query(50, ge=1, le=200)):
    """Get recent error and critical log entries."""
    return {"errors": get_log_buffer().get_errors(limit=limit)}


@router.post("/logs/clear")
async def clear_logs():
    """Clear the in-memory log buffer."""
    get_log_buffer().clear()
    logger.info("Log buffer cleared by admin")
    return {"status": "cleared"}
