"""
Asset Service

Handles asset rows for generated output. An asset starts out pointing at
the provider's (ephemeral) URL; a successful transfer swaps in the
permanent CDN URL exactly once.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from supabase import Client, PostgrestAPIError

from content_engine.config import config
from .client import get_supabase_admin_client


# Postgres error code raised by the (task_id, index) unique index
UNIQUE_VIOLATION = "23505"


class TransferStatus:
    PENDING = "pending"
    TRANSFERRED = "transferred"
    FAILED = "failed"


class AssetNotFoundError(Exception):
    """Raised when an asset is not found in the database."""
    pass


class DuplicateAssetError(Exception):
    """Raised when assets for the same task and index already exist."""
    pass


class AssetService:
    """
    Service class for asset operations.
    """

    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        self._client = client
        self.table = table or config.ASSETS_TABLE

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    # =========================================================================
    # Asset Creation
    # =========================================================================

    async def create_many(self, assets: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert asset rows in a single request and return them with ids."""
        if not assets:
            return []
        try:
            result = self.client.table(self.table).insert(assets).execute()
        except PostgrestAPIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateAssetError(str(e)) from e
            raise
        return result.data

    # =========================================================================
    # Asset Retrieval
    # =========================================================================

    async def get_by_id(self, asset_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table(self.table)
            .select("*")
            .eq("id", str(asset_id))
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_by_task_id(self, task_id: str) -> List[Dict[str, Any]]:
        """Assets already materialized for a provider task."""
        result = (
            self.client.table(self.table)
            .select("*")
            .eq("metadata->>task_id", task_id)
            .order("file_name")
            .execute()
        )
        return result.data

    # =========================================================================
    # Transfer Bookkeeping
    # =========================================================================

    async def mark_transferred(
        self,
        asset_id: str,
        original_url: str,
        cdn_url: str,
        storage_path: str,
        file_size: Optional[int] = None,
        mime_type: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Point the asset at its permanent URL.

        Only applies while the asset still holds `original_url`, so the
        URL is replaced at most once.
        """
        asset = await self.get_by_id(asset_id)
        if not asset:
            raise AssetNotFoundError(f"Asset {asset_id} not found")

        metadata = dict(asset.get("metadata") or {})
        metadata.update({
            "transfer_status": TransferStatus.TRANSFERRED,
            "original_url": original_url,
            "transferred_at": datetime.now(timezone.utc).isoformat(),
        })
        metadata.pop("transfer_error", None)

        update_data = {
            "url": cdn_url,
            "cdn_url": cdn_url,
            "storage_path": storage_path,
            "metadata": metadata,
        }
        if file_size is not None:
            update_data["file_size"] = file_size
        if mime_type:
            update_data["mime_type"] = mime_type

        result = (
            self.client.table(self.table)
            .update(update_data)
            .eq("id", str(asset_id))
            .eq("url", original_url)
            .execute()
        )
        return result.data[0] if result.data else None

    async def mark_transfer_failed(self, asset_id: str, error: str) -> Optional[Dict[str, Any]]:
        """Record a failed transfer. The asset keeps serving its original URL."""
        asset = await self.get_by_id(asset_id)
        if not asset:
            raise AssetNotFoundError(f"Asset {asset_id} not found")

        metadata = dict(asset.get("metadata") or {})
        metadata.update({
            "transfer_status": TransferStatus.FAILED,
            "transfer_error": error,
            "transfer_failed_at": datetime.now(timezone.utc).isoformat(),
        })

        result = (
            self.client.table(self.table)
            .update({"metadata": metadata})
            .eq("id", str(asset_id))
            .execute()
        )
        return result.data[0] if result.data else None
