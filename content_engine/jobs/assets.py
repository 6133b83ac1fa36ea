"""
Asset materialization and transfer.

AssetMaterializer persists one asset row per provider result URL and then
hands each asset to a TransferDispatcher. Transfers copy the file from the
provider's short-lived URL to BunnyCDN and swap the asset URL in place.
Transfer problems only ever touch the asset's metadata; they never reach
the job or the webhook response.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Set

from content_engine.config import config
from content_engine.database.assets import AssetService, DuplicateAssetError, TransferStatus
from content_engine.errors import AssetPersistenceError
from content_engine.providers.storage import BunnyStorage
from content_engine.utils.logging import transfer_logger as logger


# =============================================================================
# Transfer
# =============================================================================

class AssetTransferService:
    """
    Moves a single asset to permanent storage.

    transfer() never raises: success returns True, any failure is logged,
    recorded on the asset's metadata, and returns False.
    """

    def __init__(
        self,
        asset_service: Optional[AssetService] = None,
        storage: Optional[BunnyStorage] = None
    ):
        self.assets = asset_service or AssetService()
        self.storage = storage or BunnyStorage()

    async def transfer(
        self,
        asset_id: str,
        source_url: str,
        project_id: Optional[str] = None
    ) -> bool:
        try:
            stored = await self.storage.store(source_url, project_id)
            updated = await self.assets.mark_transferred(
                asset_id,
                original_url=source_url,
                cdn_url=stored.url,
                storage_path=stored.storage_path,
                file_size=stored.file_size,
                mime_type=stored.mime_type,
            )
        except Exception as e:
            logger.error(
                f"Asset transfer failed: {e}",
                asset_id=asset_id,
                source_url=source_url
            )
            try:
                await self.assets.mark_transfer_failed(asset_id, str(e))
            except Exception as mark_error:
                logger.error(
                    "Could not record transfer failure",
                    asset_id=asset_id,
                    error=str(mark_error)
                )
            return False

        if updated is None:
            logger.warning(
                "Asset URL already replaced, transfer result discarded",
                asset_id=asset_id
            )
            return False

        logger.info(
            "Asset transferred to CDN",
            asset_id=asset_id,
            cdn_url=stored.url,
            file_size=stored.file_size
        )
        return True


class TransferDispatcher(Protocol):
    async def dispatch(self, asset_id: str, source_url: str, project_id: Optional[str]) -> None: ...


class BackgroundTransferDispatcher:
    """Runs transfers as asyncio tasks in the current process."""

    def __init__(self, transfer_service: Optional[AssetTransferService] = None):
        self._transfer_service = transfer_service
        self._tasks: Set[asyncio.Task] = set()

    @property
    def transfer_service(self) -> AssetTransferService:
        if self._transfer_service is None:
            self._transfer_service = AssetTransferService()
        return self._transfer_service

    async def dispatch(self, asset_id: str, source_url: str, project_id: Optional[str]) -> None:
        task = asyncio.create_task(
            self.transfer_service.transfer(asset_id, source_url, project_id)
        )
        # Hold a reference until the task is done
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self):
        """Wait for every scheduled transfer to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class RQTransferDispatcher:
    """Enqueues transfers on the RQ `transfers` queue for a separate worker."""

    async def dispatch(self, asset_id: str, source_url: str, project_id: Optional[str]) -> None:
        from content_engine.queue.tasks import enqueue_asset_transfer

        enqueue_asset_transfer(asset_id, source_url, project_id)


# Global dispatcher instance
_dispatcher_instance: Optional[TransferDispatcher] = None


def get_transfer_dispatcher() -> TransferDispatcher:
    """Get or create the dispatcher selected by ASSET_TRANSFER_BACKEND."""
    global _dispatcher_instance

    if _dispatcher_instance is None:
        if config.ASSET_TRANSFER_BACKEND == "rq":
            _dispatcher_instance = RQTransferDispatcher()
        else:
            _dispatcher_instance = BackgroundTransferDispatcher()

    return _dispatcher_instance


# =============================================================================
# Materialization
# =============================================================================

def _asset_index(asset: Dict[str, Any]) -> int:
    return int((asset.get("metadata") or {}).get("index", 0))


class AssetMaterializer:
    """
    Turns provider result URLs into asset rows.

    Persistence is synchronous and must succeed before the job can be
    completed; transfer scheduling is fire-and-forget.
    """

    def __init__(
        self,
        asset_service: Optional[AssetService] = None,
        dispatcher: Optional[TransferDispatcher] = None
    ):
        self.assets = asset_service or AssetService()
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> TransferDispatcher:
        if self._dispatcher is None:
            self._dispatcher = get_transfer_dispatcher()
        return self._dispatcher

    def build_asset_rows(
        self,
        job: Dict[str, Any],
        task_id: str,
        urls: List[str],
        provider: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        payload = job.get("payload") or {}
        provider = provider or payload.get("provider")
        generated_at = datetime.now(timezone.utc).isoformat()
        image_format = payload.get("output_format") or "png"

        return [
            {
                "file_name": f"AI Generated {index + 1} - {task_id[:8]}",
                "url": url,
                "storage_path": url,
                "scope": payload.get("scope") or "project",
                "project_id": job.get("project_id") or payload.get("project_id"),
                "organization_id": job.get("organization_id") or payload.get("organization_id"),
                "owner_user_id": job.get("user_id") or payload.get("user_id"),
                "variants": {
                    "original": {
                        "url": url,
                        "width": config.IMAGE_WIDTH,
                        "height": config.IMAGE_HEIGHT,
                        "format": image_format,
                        "size": 0,
                    }
                },
                "metadata": {
                    "ai_generated": True,
                    "job_id": job.get("job_id"),
                    "provider": provider,
                    "task_id": task_id,
                    "prompt": payload.get("prompt"),
                    "index": index,
                    "generated_at": generated_at,
                    "transfer_status": TransferStatus.PENDING,
                },
            }
            for index, url in enumerate(urls)
        ]

    async def materialize(
        self,
        job: Dict[str, Any],
        task_id: str,
        urls: List[str],
        provider: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Persist assets for a finished task and schedule their transfers.

        Assets already stored for the same task are reused, so a retried
        notification never duplicates them.

        Raises:
            AssetPersistenceError: if the rows cannot be read or written
        """
        try:
            assets = await self.assets.get_by_task_id(task_id)
            if assets:
                logger.info(
                    "Reusing assets from an earlier delivery",
                    task_id=task_id,
                    count=len(assets)
                )
            else:
                assets = await self._insert_or_reuse(job, task_id, urls, provider)
        except Exception as e:
            raise AssetPersistenceError(f"Failed to save assets for task {task_id}: {e}") from e

        if not assets:
            raise AssetPersistenceError(f"No assets were stored for task {task_id}")

        assets = sorted(assets, key=_asset_index)

        logger.info("Assets saved", task_id=task_id, job_id=job.get("job_id"), count=len(assets))

        await self.schedule_transfers(assets)
        return assets

    async def _insert_or_reuse(self, job, task_id, urls, provider):
        try:
            return await self.assets.create_many(
                self.build_asset_rows(job, task_id, urls, provider)
            )
        except DuplicateAssetError:
            # A concurrent delivery inserted them first
            logger.info("Assets already inserted by another delivery", task_id=task_id)
            return await self.assets.get_by_task_id(task_id)

    async def schedule_transfers(self, assets: List[Dict[str, Any]]):
        """Dispatch one transfer per asset still on its provider URL."""
        for asset in assets:
            metadata = asset.get("metadata") or {}
            if metadata.get("transfer_status") == TransferStatus.TRANSFERRED:
                continue
            try:
                await self.dispatcher.dispatch(
                    asset["id"],
                    asset["url"],
                    asset.get("project_id"),
                )
            except Exception as e:
                logger.error(
                    f"Could not schedule asset transfer: {e}",
                    asset_id=asset.get("id")
                )
