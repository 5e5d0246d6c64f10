"""Object storage client for the Supabase Storage bucket.

Bucket layout:
  data/apartments.json   listing collection
  images/<key>           image blobs

Writes are authenticated with the service role key; reads of the document and
images go to the bucket's public endpoint. Nothing here raises past the
boundary: failures are logged and returned as False / None / [].
"""

import asyncio
import json
import math
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from supabase import Client

from aptrack.services.http_session import HttpSession
from aptrack.services.supabase_client import SupabaseClient
from aptrack.utils.logging import get_structured_logger, log_timing, mask_sensitive_data
from aptrack.utils.settings import Settings

logger = get_structured_logger(__name__)

USAGE_FOLDERS = ("data", "images")
LIST_LIMIT = 10000


@dataclass(frozen=True)
class StorageEntry:
    name: str
    size: int
    is_file: bool


@dataclass(frozen=True)
class StorageUsage:
    total_bytes: int = 0
    file_count: int = 0

    @property
    def formatted(self) -> str:
        return format_bytes(self.total_bytes)


def format_bytes(num_bytes: int) -> str:
    """Format a byte count for display (``0 B``, ``1.5 KB``...)."""
    if num_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(num_bytes, 1024))), len(units) - 1)
    value = round(num_bytes / math.pow(1024, i), 1)
    if value == int(value):
        value = int(value)
    return f"{value} {units[i]}"


def _entry_from_item(item: dict) -> StorageEntry:
    # Folder placeholders come back without an id.
    metadata = item.get("metadata") or {}
    return StorageEntry(
        name=item.get("name", ""),
        size=int(metadata.get("size") or 0),
        is_file=bool(item.get("id")),
    )


class ObjectStorageClient:
    """Upload, delete and list objects in the listings bucket."""

    def __init__(
        self,
        settings: Settings,
        supabase: Optional[Client] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self._supabase = SupabaseClient(settings, supabase)
        self._http_client = http_client

    def public_url(self, path: str) -> str:
        return self.settings.public_url(path)

    def image_url(self, key: str) -> str:
        return self.public_url(self.settings.image_path(key))

    def document_url(self) -> str:
        return self.public_url(self.settings.document_path)

    async def upload(self, path: str, data: bytes, content_type: str) -> bool:
        """Upload ``data`` to ``path``, overwriting any existing object."""
        try:
            async with self._supabase as client:
                bucket = client.storage.from_(self.settings.bucket)
                with log_timing("storage_upload", logger=logger, path=path, size=len(data)):
                    await asyncio.to_thread(
                        bucket.upload,
                        path,
                        data,
                        {"content-type": content_type, "upsert": "true"},
                    )
            return True
        except Exception as e:
            logger.warning("Storage upload failed", path=path, error=mask_sensitive_data(str(e)))
            return False

    async def delete(self, paths: list[str]) -> bool:
        """Delete a batch of object paths in one request."""
        if not paths:
            return True
        try:
            async with self._supabase as client:
                bucket = client.storage.from_(self.settings.bucket)
                await asyncio.to_thread(bucket.remove, list(paths))
            logger.info("Storage objects deleted", paths=list(paths))
            return True
        except Exception as e:
            logger.warning("Storage delete failed", paths=list(paths), error=mask_sensitive_data(str(e)))
            return False

    async def list_objects(self, prefix: str) -> list[StorageEntry]:
        try:
            async with self._supabase as client:
                bucket = client.storage.from_(self.settings.bucket)
                items = await asyncio.to_thread(bucket.list, prefix, {"limit": LIST_LIMIT})
        except Exception as e:
            logger.warning("Storage list failed", prefix=prefix, error=mask_sensitive_data(str(e)))
            return []
        return [_entry_from_item(item) for item in items or [] if isinstance(item, dict)]

    async def usage(self) -> StorageUsage:
        """Total bytes and file count across the document and image folders."""
        listings = await asyncio.gather(*(self.list_objects(folder) for folder in USAGE_FOLDERS))
        files = [entry for entries in listings for entry in entries if entry.is_file]
        usage = StorageUsage(total_bytes=sum(e.size for e in files), file_count=len(files))
        logger.info("Storage usage computed", total=usage.formatted, file_count=usage.file_count)
        return usage

    async def upload_image(self, key: str, data: bytes, content_type: str) -> bool:
        return await self.upload(self.settings.image_path(key), data, content_type)

    async def delete_image(self, key: str) -> bool:
        return await self.delete([self.settings.image_path(key)])

    async def upload_document(self, collection: list[dict]) -> bool:
        body = json.dumps(collection, ensure_ascii=False).encode("utf-8")
        return await self.upload(self.settings.document_path, body, "application/json")

    async def fetch_document(self) -> Optional[list[Any]]:
        """Read the collection from the public URL, bypassing HTTP caches."""
        headers = {"Cache-Control": "no-store", "Pragma": "no-cache"}
        params = {"t": str(int(time.time() * 1000))}
        try:
            async with HttpSession(self._http_client) as client:
                response = await client.get(self.document_url(), headers=headers, params=params)
            if not response.is_success:
                logger.debug("Remote document unavailable", status_code=response.status_code)
                return None
            data = response.json()
        except Exception as e:
            logger.debug("Remote document fetch failed", error=str(e))
            return None
        return data if isinstance(data, list) else None

    async def download(self, url: str) -> Optional[bytes]:
        """Fetch raw bytes from a public URL, None on any failure."""
        try:
            async with HttpSession(self._http_client) as client:
                response = await client.get(url)
        except Exception as e:
            logger.warning("Download failed", url=url, error=str(e))
            return None
        if not response.is_success:
            logger.warning("Download failed", url=url, status_code=response.status_code)
            return None
        return response.content
