import pytest
from pydantic import ValidationError as NotificationError

from content_engine.database.assets import DuplicateAssetError
from content_engine.errors import AssetPersistenceError
from content_engine.jobs.assets import AssetMaterializer
from content_engine.jobs.completion import CompletionNotification, CompletionReceiver
from content_engine.jobs.producer import JobProducer
from content_engine.providers.image import ImageTask


@pytest.fixture
def receiver(job_store, asset_store, dispatcher):
    return CompletionReceiver(
        job_service=job_store,
        materializer=AssetMaterializer(asset_service=asset_store, dispatcher=dispatcher),
    )


def processing_image_job(job_store, task_id="task-abc12345", **fields):
    return job_store.insert(
        job_id=fields.pop("job_id", "job_img"),
        type="image-generation",
        status="processing",
        payload={"prompt": "A lighthouse at dusk", "project_id": "proj-1", "provider": "replicate"},
        project_id="proj-1",
        organization_id="org-1",
        user_id="user-1",
        provider_task_id=task_id,
        **fields,
    )


# ===== Notification parsing =====

def test_notification_accepts_provider_aliases():
    n = CompletionNotification.model_validate(
        {"taskId": "t1", "status": "FINISHED", "resultUrls": ["https://x/1.png"]}
    )
    assert (n.task_id, n.status, n.result_urls) == ("t1", "finished", ["https://x/1.png"])

    n = CompletionNotification.model_validate({"task_id": "t2", "status": "done", "image_urls": ["u"]})
    assert n.result_urls == ["u"]

    n = CompletionNotification.model_validate({"id": "t3", "status": "succeeded", "output": "https://x/one.png"})
    assert n.task_id == "t3"
    assert n.result_urls == ["https://x/one.png"]

    n = CompletionNotification.model_validate({"id": "t4", "status": "failed", "error": "NSFW content"})
    assert n.message == "NSFW content"
    assert n.failed


def test_notification_requires_task_id():
    with pytest.raises(NotificationError):
        CompletionNotification.model_validate({"status": "finished"})


def test_notification_from_polled_task():
    n = CompletionNotification.from_task(
        ImageTask(task_id="t5", status="succeeded", result_urls=["https://x/a.png"])
    )
    assert n.succeeded
    assert n.result_urls == ["https://x/a.png"]


# ===== Receiver =====

@pytest.mark.anyio
async def test_image_job_end_to_end(job_store, queue, worker, receiver, asset_store, dispatcher):
    producer = JobProducer(job_service=job_store, queue=queue)
    ack = await producer.submit("image-generation", {"prompt": "Red fox", "project_id": "proj-7"})
    await worker.run_once()
    task_id = job_store.jobs[ack["job_id"]]["provider_task_id"]

    outcome = await receiver.handle(CompletionNotification.model_validate(
        {"taskId": task_id, "status": "finished", "resultUrls": ["https://provider/x.png"]}
    ))

    assert outcome.matched
    assert outcome.job_id == ack["job_id"]
    [asset] = asset_store.assets.values()
    assert asset["project_id"] == "proj-7"
    assert asset["url"] == "https://provider/x.png"
    assert asset["metadata"]["job_id"] == ack["job_id"]
    job = job_store.jobs[ack["job_id"]]
    assert job["status"] == "completed"
    assert job["result"] == {
        "image_url": "https://provider/x.png",
        "image_urls": ["https://provider/x.png"],
        "asset_ids": [asset["id"]],
    }
    assert dispatcher.dispatched == [(asset["id"], "https://provider/x.png", "proj-7")]


@pytest.mark.anyio
async def test_asset_rows_follow_provider_order(job_store, receiver, asset_store):
    processing_image_job(job_store)

    await receiver.handle(CompletionNotification(
        task_id="task-abc12345",
        status="finished",
        result_urls=["https://p/1.png", "https://p/2.png"],
    ))

    assets = sorted(asset_store.assets.values(), key=lambda a: a["id"])
    assert [a["file_name"] for a in assets] == [
        "AI Generated 1 - task-abc",
        "AI Generated 2 - task-abc",
    ]
    first = assets[0]
    assert first["scope"] == "project"
    assert first["organization_id"] == "org-1"
    assert first["owner_user_id"] == "user-1"
    assert first["variants"]["original"]["url"] == "https://p/1.png"
    assert first["metadata"]["ai_generated"] is True
    assert first["metadata"]["prompt"] == "A lighthouse at dusk"
    assert first["metadata"]["provider"] == "replicate"
    assert first["metadata"]["transfer_status"] == "pending"


@pytest.mark.anyio
async def test_duplicate_notification_is_a_noop(job_store, receiver, asset_store, dispatcher):
    processing_image_job(job_store)
    notification = CompletionNotification(task_id="task-abc12345", status="finished", result_urls=["https://p/1.png"])

    first = await receiver.handle(notification)
    completed = dict(job_store.jobs["job_img"])
    second = await receiver.handle(notification)

    assert first.matched and second.matched
    assert second.job_id == "job_img"
    assert len(asset_store.assets) == 1
    assert len(dispatcher.dispatched) == 1
    assert job_store.jobs["job_img"] == completed


@pytest.mark.anyio
async def test_unmatched_task_changes_nothing(job_store, receiver, asset_store):
    processing_image_job(job_store)
    before = dict(job_store.jobs["job_img"])

    outcome = await receiver.handle(CompletionNotification(
        task_id="task-unknown", status="finished", result_urls=["https://p/1.png"]
    ))

    assert outcome.matched is False
    assert outcome.job_id is None
    assert asset_store.assets == {}
    assert job_store.jobs["job_img"] == before


@pytest.mark.anyio
@pytest.mark.parametrize("status", ["failed", "error", "canceled"])
async def test_failure_status_fails_the_job(job_store, receiver, status):
    processing_image_job(job_store)

    outcome = await receiver.handle(CompletionNotification(
        task_id="task-abc12345", status=status, message="Prompt rejected"
    ))

    assert outcome.matched
    job = job_store.jobs["job_img"]
    assert job["status"] == "failed"
    assert job["error_message"] == "Prompt rejected"


@pytest.mark.anyio
async def test_success_without_urls_fails_the_job(job_store, receiver, asset_store):
    processing_image_job(job_store)

    await receiver.handle(CompletionNotification(task_id="task-abc12345", status="finished"))

    job = job_store.jobs["job_img"]
    assert job["status"] == "failed"
    assert "without any result URLs" in job["error_message"]
    assert asset_store.assets == {}


@pytest.mark.anyio
async def test_intermediate_status_is_acknowledged_only(job_store, receiver):
    processing_image_job(job_store)

    outcome = await receiver.handle(CompletionNotification(task_id="task-abc12345", status="processing"))

    assert outcome.matched
    assert job_store.jobs["job_img"]["status"] == "processing"


@pytest.mark.anyio
async def test_persistence_failure_leaves_job_processing(job_store, receiver, asset_store):
    processing_image_job(job_store)
    asset_store.fail_create = True

    with pytest.raises(AssetPersistenceError):
        await receiver.handle(CompletionNotification(
            task_id="task-abc12345", status="finished", result_urls=["https://p/1.png"]
        ))

    assert job_store.jobs["job_img"]["status"] == "processing"


@pytest.mark.anyio
async def test_redelivery_reuses_assets_from_failed_attempt(job_store, receiver, asset_store):
    processing_image_job(job_store)
    notification = CompletionNotification(task_id="task-abc12345", status="finished", result_urls=["https://p/1.png"])

    original_mark_completed = job_store.mark_completed

    async def flaky_mark_completed(*args, **kwargs):
        job_store.mark_completed = original_mark_completed
        raise RuntimeError("connection reset")

    job_store.mark_completed = flaky_mark_completed

    with pytest.raises(RuntimeError):
        await receiver.handle(notification)
    await receiver.handle(notification)

    assert asset_store.create_calls == 1
    assert len(asset_store.assets) == 1
    assert job_store.jobs["job_img"]["status"] == "completed"
    assert job_store.jobs["job_img"]["result"]["asset_ids"] == list(asset_store.assets)


@pytest.mark.anyio
async def test_dispatch_errors_do_not_fail_completion(job_store, asset_store):
    class BrokenDispatcher:
        async def dispatch(self, asset_id, source_url, project_id):
            raise ConnectionError("redis down")

    receiver = CompletionReceiver(
        job_service=job_store,
        materializer=AssetMaterializer(asset_service=asset_store, dispatcher=BrokenDispatcher()),
    )
    processing_image_job(job_store)

    outcome = await receiver.handle(CompletionNotification(
        task_id="task-abc12345", status="finished", result_urls=["https://p/1.png"]
    ))

    assert outcome.matched
    assert job_store.jobs["job_img"]["status"] == "completed"


@pytest.mark.anyio
async def test_concurrent_insert_conflict_reuses_winning_assets(job_store, receiver, asset_store, monkeypatch):
    processing_image_job(job_store)
    insert = asset_store.create_many

    async def lose_the_race(rows):
        # another delivery commits the same rows first
        await insert(rows)
        raise DuplicateAssetError("duplicate key value violates unique constraint")

    monkeypatch.setattr(asset_store, "create_many", lose_the_race)

    outcome = await receiver.handle(CompletionNotification(
        task_id="task-abc12345", status="finished", result_urls=["https://p/1.png"]
    ))

    assert outcome.matched
    assert len(asset_store.assets) == 1
    job = job_store.jobs["job_img"]
    assert job["status"] == "completed"
    assert job["result"]["asset_ids"] == list(asset_store.assets)
