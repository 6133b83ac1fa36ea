"""
Permanent storage for generated assets (BunnyCDN).

store(source_url) downloads a provider-hosted file and uploads it to the
storage zone, returning the public CDN URL.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from content_engine.config import config
from content_engine.errors import TransferFailure


@dataclass
class StoredFile:
    url: str
    storage_path: str
    file_size: int
    mime_type: str


class BunnyStorage:
    """
    BunnyCDN storage zone client.

    Storage endpoints are region specific: uploads go to
    https://{region}.storage.bunnycdn.com/{zone}/{path} and are served
    from https://{cdn_hostname}/{path}.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        storage_zone: Optional[str] = None,
        cdn_hostname: Optional[str] = None,
        region: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ):
        self.api_key = api_key or config.BUNNY_API_KEY
        self.storage_zone = storage_zone or config.BUNNY_STORAGE_ZONE
        self.cdn_hostname = cdn_hostname or config.BUNNY_CDN_HOSTNAME
        self.region = config.BUNNY_STORAGE_REGION if region is None else region
        self.timeout = timeout or config.TRANSFER_TIMEOUT_SECONDS
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.storage_zone and self.cdn_hostname)

    @property
    def upload_host(self) -> str:
        return f"{self.region}.storage.bunnycdn.com" if self.region else "storage.bunnycdn.com"

    def build_storage_path(self, content_type: str, project_id: Optional[str] = None) -> str:
        ext = content_type.split("/")[-1] or "png"
        if ext == "jpeg":
            ext = "jpg"
        filename = f"{int(time.time() * 1000)}-{secrets.token_hex(6)}.{ext}"
        return f"projects/{project_id}/{filename}" if project_id else f"uploads/{filename}"

    async def store(self, source_url: str, project_id: Optional[str] = None) -> StoredFile:
        """
        Copy a file to permanent storage.

        Raises:
            TransferFailure: if storage is not configured, or the download
                or upload fails
        """
        if not self.configured:
            raise TransferFailure("BunnyCDN is not configured")

        client = self._http_client or httpx.AsyncClient(timeout=self.timeout)
        try:
            download = await client.get(source_url, follow_redirects=True)
            if not download.is_success:
                raise TransferFailure(
                    f"Failed to download {source_url}: {download.status_code} {download.reason_phrase}"
                )

            body = download.content
            content_type = download.headers.get("content-type", "image/png").split(";")[0].strip()
            storage_path = self.build_storage_path(content_type, project_id)

            upload = await client.put(
                f"https://{self.upload_host}/{self.storage_zone}/{storage_path}",
                content=body,
                headers={
                    "AccessKey": self.api_key,
                    "Content-Type": content_type,
                },
            )
            if not upload.is_success:
                raise TransferFailure(
                    f"BunnyCDN upload failed: {upload.status_code} {upload.reason_phrase}"
                )
        except httpx.HTTPError as e:
            raise TransferFailure(f"Transfer request failed: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

        return StoredFile(
            url=f"https://{self.cdn_hostname}/{storage_path}",
            storage_path=storage_path,
            file_size=len(body),
            mime_type=content_type,
        )
