#!/usr/bin/env python3
"""
RQ worker runner for asset transfers.

Only needed when ASSET_TRANSFER_BACKEND=rq. Run this separately from the
web server.

Usage:
    python -m content_engine.queue.run_worker            # transfers queue
    python -m content_engine.queue.run_worker --burst    # Process and exit
"""

import argparse
import sys

from rq import Worker, Queue

from content_engine.config import config
from content_engine.queue.connection import get_redis_connection, QUEUE_TRANSFERS
from content_engine.utils.logging import configure_logging


def main():
    parser = argparse.ArgumentParser(description="Run the asset transfer RQ worker")
    parser.add_argument(
        "--queues",
        "-q",
        nargs="+",
        default=[QUEUE_TRANSFERS],
        help=f"Queues to process (default: {QUEUE_TRANSFERS})"
    )
    parser.add_argument(
        "--burst",
        "-b",
        action="store_true",
        help="Run in burst mode (process all jobs and exit)"
    )
    parser.add_argument(
        "--name",
        "-n",
        default=None,
        help="Worker name (auto-generated if not specified)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else config.LOG_LEVEL)

    if not config.REDIS_URL:
        print("ERROR: REDIS_URL environment variable is required")
        sys.exit(1)

    try:
        conn = get_redis_connection()
        print("Connected to Redis")

        queues = [Queue(name, connection=conn) for name in args.queues]
        print(f"Listening on queues: {', '.join(args.queues)}")

        worker = Worker(queues, connection=conn, name=args.name)

        print(f"Transfer worker starting {'(burst mode)' if args.burst else ''}")
        print("-" * 50)

        worker.work(
            burst=args.burst,
            logging_level="DEBUG" if args.verbose else "INFO",
            with_scheduler=True,  # Retry intervals need the RQ scheduler
        )

    except KeyboardInterrupt:
        print("\nWorker stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"Worker error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
