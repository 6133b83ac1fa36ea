"""
AI job pipeline.

Components:
- JobProducer: validates requests, writes the record, queues the id
- RedisPriorityQueue: priority + FIFO queue of job ids
- AIJobWorker: pops ids and runs generation strategies
- CompletionReceiver: applies provider notifications to jobs
- AssetMaterializer: stores result assets and schedules CDN transfers
- JobReconciler: periodic repair of orphaned and stale jobs

Usage:
    # In API endpoint - queue a job
    from content_engine.jobs import JobProducer
    ack = await JobProducer().submit("content-generation", {"prompt": "..."})

    # In FastAPI startup - start an in-process worker
    from content_engine.jobs import start_ai_worker, stop_ai_worker
    await start_ai_worker()
"""

from content_engine.jobs.queue import RedisPriorityQueue, PriorityQueue, get_priority_queue
from content_engine.jobs.producer import JobProducer, validate_request
from content_engine.jobs.strategies import (
    SyncResult,
    AsyncHandle,
    GenerationStrategy,
    build_strategies,
    resolve_strategy,
)
from content_engine.jobs.worker import (
    AIJobWorker,
    WorkerPolicy,
    start_ai_worker,
    stop_ai_worker,
    get_worker,
)
from content_engine.jobs.assets import (
    AssetMaterializer,
    AssetTransferService,
    BackgroundTransferDispatcher,
    RQTransferDispatcher,
    get_transfer_dispatcher,
)
from content_engine.jobs.completion import (
    CompletionNotification,
    CompletionOutcome,
    CompletionReceiver,
)
from content_engine.jobs.reconciler import JobReconciler

__all__ = [
    # Queue
    "RedisPriorityQueue",
    "PriorityQueue",
    "get_priority_queue",

    # Producer
    "JobProducer",
    "validate_request",

    # Strategies
    "SyncResult",
    "AsyncHandle",
    "GenerationStrategy",
    "build_strategies",
    "resolve_strategy",

    # Worker
    "AIJobWorker",
    "WorkerPolicy",
    "start_ai_worker",
    "stop_ai_worker",
    "get_worker",

    # Assets
    "AssetMaterializer",
    "AssetTransferService",
    "BackgroundTransferDispatcher",
    "RQTransferDispatcher",
    "get_transfer_dispatcher",

    # Completion
    "CompletionNotification",
    "CompletionOutcome",
    "CompletionReceiver",

    # Reconciler
    "JobReconciler",
]
