#!/usr/bin/env python3
"""
Content Engine Service Entrypoint

Every deployed service runs this file; SERVICE_TYPE picks the process.

SERVICE_TYPE values:
  - web (default): FastAPI app under gunicorn with uvicorn workers
  - worker: AI job worker (priority queue consumer)
  - transfer: RQ worker for asset transfers (ASSET_TRANSFER_BACKEND=rq)
  - sweeper: job reconciler (orphaned and stale jobs)
"""

import os
import sys

SERVICE_TYPE = os.environ.get("SERVICE_TYPE", "web")
PORT = os.environ.get("PORT", "8080")
WEB_CONCURRENCY = os.environ.get("WEB_CONCURRENCY", "2")

SERVICES = {
    "web": [
        "gunicorn", "content_engine.api.main:app",
        "--workers", WEB_CONCURRENCY,
        "--worker-class", "uvicorn.workers.UvicornWorker",
        "--bind", f"0.0.0.0:{PORT}",
        "--timeout", "120",
        "--graceful-timeout", "60",
    ],
    "worker": [sys.executable, "-m", "content_engine.jobs.run_worker"],
    "transfer": [sys.executable, "-m", "content_engine.queue.run_worker", "--queues", "transfers"],
    "sweeper": [sys.executable, "-m", "content_engine.jobs.run_reconciler"],
}

cmd = SERVICES.get(SERVICE_TYPE)
if cmd is None:
    print(f"ERROR: Unknown SERVICE_TYPE: {SERVICE_TYPE}")
    print(f"Valid values: {', '.join(SERVICES)}")
    sys.exit(1)

print("=" * 50)
print(f"Content Engine Service: {SERVICE_TYPE}")
print(f"Running: {' '.join(cmd)}")
print("=" * 50)

# Hand the process over so signals reach the service directly
os.execvp(cmd[0], cmd)
