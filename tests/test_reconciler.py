from datetime import datetime, timedelta, timezone

import pytest

from content_engine.jobs.assets import AssetMaterializer
from content_engine.jobs.completion import CompletionReceiver
from content_engine.jobs.reconciler import JobReconciler
from content_engine.providers.image import ImageTask


def minutes_ago(minutes: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(minutes=minutes)).isoformat()


@pytest.fixture
def reconciler(job_store, queue, image_client, asset_store, dispatcher):
    receiver = CompletionReceiver(
        job_service=job_store,
        materializer=AssetMaterializer(asset_service=asset_store, dispatcher=dispatcher),
    )
    return JobReconciler(
        job_service=job_store,
        queue=queue,
        image_client=image_client,
        receiver=receiver,
        interval_seconds=60,
        orphan_timeout_minutes=15,
        stale_processing_minutes=30,
    )


@pytest.mark.anyio
async def test_sweep_requeues_lost_entries_only(reconciler, job_store, queue):
    job_store.insert(job_id="job_lost", priority="high", created_at=minutes_ago(20))
    job_store.insert(job_id="job_waiting", created_at=minutes_ago(20))
    job_store.insert(job_id="job_fresh", created_at=minutes_ago(1))
    await queue.push("medium", "job_waiting")

    requeued = await reconciler.sweep_orphans()

    assert requeued == 1
    assert await queue.contains("job_lost")
    assert not await queue.contains("job_fresh")
    # high priority entry comes out first
    assert await queue.pop() == "job_lost"


@pytest.mark.anyio
async def test_stale_image_job_completes_through_receiver(reconciler, job_store, image_client, asset_store):
    job_store.insert(
        job_id="job_img",
        type="image-generation",
        status="processing",
        payload={"prompt": "Mountains", "project_id": "proj-2"},
        project_id="proj-2",
        provider_task_id="task-late",
        started_at=minutes_ago(45),
    )
    image_client.tasks["task-late"] = ImageTask(
        task_id="task-late", status="succeeded", result_urls=["https://provider/late.png"]
    )

    counts = await reconciler.poll_stale_image_jobs()

    assert counts == {"polled": 1, "failed": 0}
    job = job_store.jobs["job_img"]
    assert job["status"] == "completed"
    assert job["result"]["image_url"] == "https://provider/late.png"
    assert len(asset_store.assets) == 1


@pytest.mark.anyio
async def test_stale_image_job_without_task_is_failed(reconciler, job_store):
    job_store.insert(
        job_id="job_img",
        type="image-generation",
        status="processing",
        started_at=minutes_ago(45),
    )

    counts = await reconciler.poll_stale_image_jobs()

    assert counts["failed"] == 1
    assert job_store.jobs["job_img"]["status"] == "failed"


@pytest.mark.anyio
async def test_poll_errors_do_not_stop_the_sweep(reconciler, job_store, image_client):
    job_store.insert(
        job_id="job_a", type="image-generation", status="processing",
        provider_task_id="task-missing", started_at=minutes_ago(45),
    )
    job_store.insert(
        job_id="job_b", type="image-generation", status="processing",
        provider_task_id="task-done", started_at=minutes_ago(45),
    )
    image_client.tasks["task-done"] = ImageTask(task_id="task-done", status="failed", error="model error")

    counts = await reconciler.poll_stale_image_jobs()

    assert counts["polled"] == 1
    assert job_store.jobs["job_a"]["status"] == "processing"
    assert job_store.jobs["job_b"]["status"] == "failed"
    assert job_store.jobs["job_b"]["error_message"] == "model error"


@pytest.mark.anyio
async def test_abandoned_text_jobs_are_failed(reconciler, job_store):
    job_store.insert(job_id="job_text", status="processing", started_at=minutes_ago(45))
    job_store.insert(job_id="job_recent", status="processing", started_at=minutes_ago(2))
    job_store.insert(
        job_id="job_img", type="image-generation", status="processing",
        provider_task_id="task-x", started_at=minutes_ago(45),
    )

    assert await reconciler.fail_abandoned_jobs() == 1

    assert job_store.jobs["job_text"]["status"] == "failed"
    assert job_store.jobs["job_recent"]["status"] == "processing"
    assert job_store.jobs["job_img"]["status"] == "processing"


@pytest.mark.anyio
async def test_run_sweep_reports_each_pass(reconciler, job_store):
    job_store.insert(job_id="job_lost", created_at=minutes_ago(20))

    result = await reconciler.run_sweep()

    assert result == {
        "requeued": 1,
        "image_jobs": {"polled": 0, "failed": 0},
        "abandoned": 0,
    }
