#!/usr/bin/env python3
"""
Standalone job reconciler (orphan sweeper).

Usage:
    python -m content_engine.jobs.run_reconciler
"""

import asyncio
import signal
import sys

from content_engine.config import config
from content_engine.jobs.assets import BackgroundTransferDispatcher, get_transfer_dispatcher
from content_engine.jobs.reconciler import JobReconciler
from content_engine.queue.connection import close_redis_connections
from content_engine.utils.logging import configure_logging


async def main():
    """Run the reconciler until SIGTERM/SIGINT."""
    configure_logging(config.LOG_LEVEL)

    print("=" * 50)
    print("AI Job Reconciler")
    print("=" * 50)

    if not config.REDIS_URL:
        print("ERROR: REDIS_URL environment variable is required")
        sys.exit(1)

    reconciler = JobReconciler()
    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()

    def shutdown_handler():
        print("\nShutting down reconciler...")
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    reconciler.start()
    print(f"  Sweep interval: {reconciler.interval}s")
    print(f"  Orphan timeout: {reconciler.orphan_timeout}m")
    print(f"  Stale processing: {reconciler.stale_processing}m")

    # First pass immediately rather than one interval after boot
    await reconciler.run_sweep()

    try:
        await shutdown_event.wait()
    finally:
        reconciler.stop()
        dispatcher = get_transfer_dispatcher()
        if isinstance(dispatcher, BackgroundTransferDispatcher):
            await dispatcher.drain()
        await close_redis_connections()
        print("Reconciler stopped.")


if __name__ == "__main__":
    asyncio.run(main())
