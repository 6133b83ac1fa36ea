"""Shared fixtures: in-memory stand-ins for Redis, Supabase and the AI providers."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

import pytest

from content_engine.database.assets import TransferStatus
from content_engine.database.jobs import JobPriority, JobStatus, JobType
from content_engine.errors import ProviderError
from content_engine.jobs.queue import RedisPriorityQueue
from content_engine.jobs.strategies import build_strategies
from content_engine.jobs.worker import AIJobWorker, WorkerPolicy
from content_engine.providers.image import ImageTask
from content_engine.providers.text import TextGeneration


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FakeRedis:
    """The handful of sorted-set and counter commands the queue uses."""

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}
        self.fail_zadd = False

    async def incr(self, key: str) -> int:
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def zadd(self, key: str, mapping: Dict[str, float]) -> int:
        if self.fail_zadd:
            raise ConnectionError("redis unavailable")
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def zpopmin(self, key: str, count: int = 1):
        zset = self.zsets.get(key, {})
        items = sorted(zset.items(), key=lambda kv: (kv[1], kv[0]))[:count]
        for member, _ in items:
            del zset[member]
        return [(member, float(score)) for member, score in items]

    async def zscore(self, key: str, member: str) -> Optional[float]:
        score = self.zsets.get(key, {}).get(member)
        return None if score is None else float(score)

    async def zcard(self, key: str) -> int:
        return len(self.zsets.get(key, {}))


class InMemoryJobStore:
    """JobService with the same conditional-transition rules, kept in a dict."""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.fail_create = False

    async def create_job(self, job_id, job_type, payload, priority):
        if self.fail_create:
            raise RuntimeError("store unavailable")
        job = {
            "job_id": job_id,
            "type": job_type,
            "payload": payload,
            "priority": JobPriority(priority).value,
            "status": JobStatus.QUEUED.value,
            "result": None,
            "error_message": None,
            "provider_task_id": None,
            "project_id": payload.get("project_id"),
            "user_id": payload.get("user_id"),
            "organization_id": payload.get("organization_id"),
            "created_at": _now(),
            "started_at": None,
            "completed_at": None,
            "failed_at": None,
        }
        self.jobs[job_id] = job
        return dict(job)

    def insert(self, **fields) -> Dict[str, Any]:
        """Seed a record directly (bypassing the producer)."""
        job = {
            "type": JobType.CONTENT_GENERATION.value,
            "payload": {"prompt": "seeded"},
            "priority": "medium",
            "status": JobStatus.QUEUED.value,
            "result": None,
            "error_message": None,
            "provider_task_id": None,
            "project_id": None,
            "user_id": None,
            "organization_id": None,
            "created_at": _now(),
            "started_at": None,
            "completed_at": None,
            "failed_at": None,
        }
        job.update(fields)
        self.jobs[job["job_id"]] = job
        return job

    async def get_job_by_id(self, job_id):
        job = self.jobs.get(job_id)
        return dict(job) if job else None

    async def get_job_by_provider_task(self, task_id):
        for job in self.jobs.values():
            if job.get("provider_task_id") == task_id:
                return dict(job)
        return None

    async def get_stale_jobs(self, status, older_than_minutes, job_type=None, limit=100):
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
        age_column = "started_at" if status == JobStatus.PROCESSING else "created_at"
        stale = [
            dict(job) for job in self.jobs.values()
            if job["status"] == JobStatus(status).value
            and job.get(age_column)
            and datetime.fromisoformat(job[age_column]) < cutoff
            and (job_type is None or job["type"] == JobType(job_type).value)
        ]
        return stale[:limit]

    async def get_recent_jobs(self, project_id=None, limit=20):
        jobs = [j for j in self.jobs.values() if not project_id or j.get("project_id") == project_id]
        return sorted(jobs, key=lambda j: j["created_at"], reverse=True)[:limit]

    def _transition(self, job_id, update, from_statuses: Iterable[JobStatus]):
        job = self.jobs.get(job_id)
        if not job or job["status"] not in {JobStatus(s).value for s in from_statuses}:
            return None
        job.update(update)
        return dict(job)

    async def mark_processing(self, job_id):
        return self._transition(
            job_id,
            {"status": JobStatus.PROCESSING.value, "started_at": _now()},
            [JobStatus.QUEUED],
        )

    async def attach_provider_task(self, job_id, task_id, provider, metadata=None):
        job = self.jobs.get(job_id)
        if not job or job["status"] != JobStatus.PROCESSING.value or job["provider_task_id"] is not None:
            return None
        payload = dict(job["payload"])
        payload.update({"provider_task_id": task_id, "provider": provider})
        if metadata:
            payload["provider_metadata"] = metadata
        job.update({"provider_task_id": task_id, "payload": payload})
        return dict(job)

    async def mark_completed(self, job_id, result, from_statuses=(JobStatus.PROCESSING,)):
        return self._transition(
            job_id,
            {"status": JobStatus.COMPLETED.value, "result": result, "error_message": None, "completed_at": _now()},
            from_statuses,
        )

    async def mark_failed(self, job_id, error_message, from_statuses=(JobStatus.QUEUED, JobStatus.PROCESSING)):
        return self._transition(
            job_id,
            {"status": JobStatus.FAILED.value, "error_message": error_message, "result": None, "failed_at": _now()},
            from_statuses,
        )

    async def get_queue_stats(self):
        counts = {status.value: 0 for status in JobStatus}
        for job in self.jobs.values():
            counts[job["status"]] += 1
        return {"total": len(self.jobs), **counts}


class InMemoryAssetStore:
    """AssetService stand-in with the conditional URL swap."""

    def __init__(self):
        self.assets: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self.fail_create = False
        self.create_calls = 0

    async def create_many(self, assets: List[Dict[str, Any]]):
        self.create_calls += 1
        if self.fail_create:
            raise RuntimeError("insert failed")
        created = []
        for row in assets:
            asset = {"id": f"asset-{next(self._ids)}", **row}
            self.assets[asset["id"]] = asset
            created.append(dict(asset))
        return created

    async def get_by_id(self, asset_id):
        asset = self.assets.get(asset_id)
        return dict(asset) if asset else None

    async def get_by_task_id(self, task_id):
        return [
            dict(a) for a in self.assets.values()
            if (a.get("metadata") or {}).get("task_id") == task_id
        ]

    async def mark_transferred(self, asset_id, original_url, cdn_url, storage_path, file_size=None, mime_type=None):
        asset = self.assets[asset_id]
        if asset["url"] != original_url:
            return None
        metadata = dict(asset.get("metadata") or {})
        metadata.update({"transfer_status": TransferStatus.TRANSFERRED, "original_url": original_url})
        metadata.pop("transfer_error", None)
        asset.update({
            "url": cdn_url,
            "cdn_url": cdn_url,
            "storage_path": storage_path,
            "file_size": file_size,
            "mime_type": mime_type,
            "metadata": metadata,
        })
        return dict(asset)

    async def mark_transfer_failed(self, asset_id, error):
        asset = self.assets[asset_id]
        metadata = dict(asset.get("metadata") or {})
        metadata.update({"transfer_status": TransferStatus.FAILED, "transfer_error": error})
        asset["metadata"] = metadata
        return dict(asset)


class FakeTextClient:
    provider = "anthropic"
    model_name = "fake-text-model"

    def __init__(self, content: str = "Generated copy", error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls: List[Dict[str, str]] = []

    async def generate(self, system_prompt: str, user_prompt: str) -> TextGeneration:
        self.calls.append({"system": system_prompt, "user": user_prompt})
        if self.error:
            raise self.error
        return TextGeneration(content=self.content, model=self.model_name, tokens=42)


class FakeImageClient:
    provider = "replicate"
    model = "fake/image-model"

    def __init__(self):
        self.submissions: List[Dict[str, Any]] = []
        self.tasks: Dict[str, ImageTask] = {}
        self.error: Optional[Exception] = None
        self._ids = itertools.count(1)

    async def submit(self, prompt: str, parameters: Dict[str, Any]) -> ImageTask:
        if self.error:
            raise self.error
        task = ImageTask(task_id=f"task-{next(self._ids):04d}", status="starting")
        self.submissions.append({"prompt": prompt, "parameters": parameters, "task_id": task.task_id})
        return task

    async def fetch(self, task_id: str) -> ImageTask:
        if task_id not in self.tasks:
            raise ProviderError(f"Failed to fetch task {task_id}", provider=self.provider)
        return self.tasks[task_id]


class RecordingDispatcher:
    def __init__(self, error: Optional[Exception] = None):
        self.dispatched: List[tuple] = []
        self.error = error

    async def dispatch(self, asset_id, source_url, project_id):
        if self.error:
            raise self.error
        self.dispatched.append((asset_id, source_url, project_id))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def queue(fake_redis):
    return RedisPriorityQueue(redis=fake_redis, key="test:queue", sequence_key="test:queue:seq")


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def asset_store():
    return InMemoryAssetStore()


@pytest.fixture
def text_client():
    return FakeTextClient()


@pytest.fixture
def image_client():
    return FakeImageClient()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def strategies(text_client, image_client):
    return build_strategies(text_client=text_client, image_client=image_client)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def worker(job_store, queue, strategies, sleeps):
    async def fake_sleep(seconds: float):
        sleeps.append(seconds)

    return AIJobWorker(
        job_service=job_store,
        queue=queue,
        strategies=strategies,
        policy=WorkerPolicy(poll_interval=5.0, failure_backoff=10.0),
        sleep=fake_sleep,
    )
