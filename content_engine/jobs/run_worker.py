#!/usr/bin/env python3
"""
Standalone AI job worker process.

Run this as a separate process from the web server so long provider
calls never hold up HTTP workers. Start as many as needed; the queue pop
is atomic.

Usage:
    python -m content_engine.jobs.run_worker
"""

import asyncio
import signal
import sys

from content_engine.config import config
from content_engine.jobs.worker import AIJobWorker, WorkerPolicy
from content_engine.queue.connection import close_redis_connections
from content_engine.utils.logging import configure_logging


async def main():
    """Run the AI job worker as a standalone process."""
    configure_logging(config.LOG_LEVEL)

    print("=" * 60)
    print("Starting Standalone AI Job Worker")
    print("=" * 60)

    if not config.REDIS_URL:
        print("ERROR: REDIS_URL environment variable is required")
        sys.exit(1)

    policy = WorkerPolicy.from_config()
    print(f"  Poll interval: {policy.poll_interval}s")
    print(f"  Failure backoff: {policy.failure_backoff}s")
    print(f"  Text generation: {'enabled' if config.can_generate_text else 'NOT CONFIGURED'}")
    print(f"  Image generation: {'enabled' if config.can_generate_images else 'NOT CONFIGURED'}")
    print("=" * 60)

    worker = AIJobWorker(policy=policy)

    # Handle shutdown signals gracefully
    def handle_shutdown(signum, frame):
        print(f"\n  Received signal {signum}, finishing current job...")
        worker.request_shutdown()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    try:
        await worker.run()
    finally:
        await close_redis_connections()
        print("  Worker stopped.")


if __name__ == "__main__":
    asyncio.run(main())
