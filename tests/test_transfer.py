import httpx
import pytest

from content_engine.errors import TransferFailure
from content_engine.jobs.assets import AssetMaterializer, AssetTransferService, BackgroundTransferDispatcher
from content_engine.jobs.completion import CompletionNotification, CompletionReceiver
from content_engine.providers.storage import BunnyStorage

PROVIDER_URL = "https://provider.example/tmp/abc.png"
IMAGE_BYTES = b"\x89PNG fake image bytes"


def make_storage(handler) -> BunnyStorage:
    return BunnyStorage(
        api_key="bunny-key",
        storage_zone="zone",
        cdn_hostname="cdn.example.net",
        region="sg",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def ok_handler(uploads):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, content=IMAGE_BYTES, headers={"content-type": "image/png"})
        uploads.append(request)
        return httpx.Response(201, json={"HttpCode": 201, "Message": "File uploaded."})
    return handler


async def seed_asset(asset_store, url=PROVIDER_URL):
    [asset] = await asset_store.create_many([
        {"file_name": "AI Generated 1 - task-abc", "url": url, "project_id": "proj-1",
         "metadata": {"task_id": "task-abc", "transfer_status": "pending"}}
    ])
    return asset


def test_storage_path_layout():
    storage = BunnyStorage(api_key="k", storage_zone="z", cdn_hostname="cdn", region="sg")

    path = storage.build_storage_path("image/jpeg", "proj-1")

    assert path.startswith("projects/proj-1/")
    assert path.endswith(".jpg")
    assert storage.build_storage_path("image/png").startswith("uploads/")
    assert storage.upload_host == "sg.storage.bunnycdn.com"


@pytest.mark.anyio
async def test_store_uploads_to_region_endpoint():
    uploads = []
    storage = make_storage(ok_handler(uploads))

    stored = await storage.store(PROVIDER_URL, "proj-1")

    [upload] = uploads
    assert upload.method == "PUT"
    assert upload.url.host == "sg.storage.bunnycdn.com"
    assert upload.url.path.startswith("/zone/projects/proj-1/")
    assert upload.headers["AccessKey"] == "bunny-key"
    assert upload.content == IMAGE_BYTES
    assert stored.url == f"https://cdn.example.net/{stored.storage_path}"
    assert stored.file_size == len(IMAGE_BYTES)
    assert stored.mime_type == "image/png"


@pytest.mark.anyio
async def test_store_raises_transfer_failure_on_download_error():
    storage = make_storage(lambda request: httpx.Response(404))

    with pytest.raises(TransferFailure):
        await storage.store(PROVIDER_URL, "proj-1")


@pytest.mark.anyio
async def test_store_requires_configuration():
    storage = BunnyStorage(api_key="", storage_zone="", cdn_hostname="")
    storage.api_key = None

    with pytest.raises(TransferFailure):
        await storage.store(PROVIDER_URL)


@pytest.mark.anyio
async def test_transfer_swaps_url_once(asset_store):
    asset = await seed_asset(asset_store)
    service = AssetTransferService(asset_service=asset_store, storage=make_storage(ok_handler([])))

    assert await service.transfer(asset["id"], PROVIDER_URL, "proj-1") is True

    stored = asset_store.assets[asset["id"]]
    assert stored["url"].startswith("https://cdn.example.net/projects/proj-1/")
    assert stored["cdn_url"] == stored["url"]
    assert stored["metadata"]["transfer_status"] == "transferred"
    assert stored["metadata"]["original_url"] == PROVIDER_URL

    # A second transfer of the same source no longer matches the asset's URL
    assert await service.transfer(asset["id"], PROVIDER_URL, "proj-1") is False
    assert asset_store.assets[asset["id"]]["url"] == stored["url"]


@pytest.mark.anyio
async def test_upload_failure_keeps_provider_url(asset_store):
    asset = await seed_asset(asset_store)

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, content=IMAGE_BYTES, headers={"content-type": "image/png"})
        return httpx.Response(401, json={"Message": "Unauthorized"})

    service = AssetTransferService(asset_service=asset_store, storage=make_storage(handler))

    assert await service.transfer(asset["id"], PROVIDER_URL, "proj-1") is False

    stored = asset_store.assets[asset["id"]]
    assert stored["url"] == PROVIDER_URL
    assert stored["metadata"]["transfer_status"] == "failed"
    assert "401" in stored["metadata"]["transfer_error"]


@pytest.mark.anyio
async def test_network_error_is_contained(asset_store):
    asset = await seed_asset(asset_store)

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    service = AssetTransferService(asset_service=asset_store, storage=make_storage(handler))

    assert await service.transfer(asset["id"], PROVIDER_URL) is False
    assert asset_store.assets[asset["id"]]["metadata"]["transfer_status"] == "failed"


@pytest.mark.anyio
async def test_background_dispatcher_runs_transfers(asset_store):
    asset = await seed_asset(asset_store)
    service = AssetTransferService(asset_service=asset_store, storage=make_storage(ok_handler([])))
    dispatcher = BackgroundTransferDispatcher(transfer_service=service)

    await dispatcher.dispatch(asset["id"], PROVIDER_URL, "proj-1")
    await dispatcher.drain()

    assert dispatcher.pending == 0
    assert asset_store.assets[asset["id"]]["metadata"]["transfer_status"] == "transferred"


@pytest.mark.anyio
async def test_failed_transfer_leaves_completed_job_untouched(job_store, asset_store):
    job_store.insert(
        job_id="job_img",
        type="image-generation",
        status="processing",
        payload={"prompt": "Lighthouse", "project_id": "proj-1"},
        project_id="proj-1",
        provider_task_id="task-abc",
    )

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, content=IMAGE_BYTES, headers={"content-type": "image/png"})
        return httpx.Response(500, text="storage unavailable")

    service = AssetTransferService(asset_service=asset_store, storage=make_storage(handler))
    dispatcher = BackgroundTransferDispatcher(transfer_service=service)
    receiver = CompletionReceiver(
        job_service=job_store,
        materializer=AssetMaterializer(asset_service=asset_store, dispatcher=dispatcher),
    )

    outcome = await receiver.handle(CompletionNotification(
        task_id="task-abc", status="finished", result_urls=[PROVIDER_URL]
    ))
    completed = dict(job_store.jobs["job_img"])
    await dispatcher.drain()

    assert outcome.matched
    [asset] = asset_store.assets.values()
    assert asset["url"] == PROVIDER_URL
    assert asset["metadata"]["transfer_status"] == "failed"
    job = job_store.jobs["job_img"]
    assert job["status"] == "completed"
    assert job["result"] == completed["result"]
    assert job["result"]["image_url"] == PROVIDER_URL
