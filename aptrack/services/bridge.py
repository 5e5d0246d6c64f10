"""Bridge services behind the api/ handlers.

``StorageProxy`` forwards writes to the object store with the server-held
service key. ``LocalFileStore`` mirrors the same operations against a local
data directory and pulls missing images from the public bucket on first read.
"""

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

from aptrack.models.image_ref import InlinePayload, generate_image_key
from aptrack.services.storage_client import ObjectStorageClient
from aptrack.utils.errors import InvalidDataUrlError, StorageError
from aptrack.utils.logging import get_structured_logger
from aptrack.utils.settings import Settings

logger = get_structured_logger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
IMAGE_CACHE_CONTROL = "public, max-age=31536000, immutable"


def validate_key(key: str) -> str:
    """Reject keys that could escape the images directory."""
    if not key or not _KEY_RE.match(key) or ".." in key:
        raise ValueError(f"Invalid image key: {key!r}")
    return key


def parse_image_data_url(data_url: Any) -> InlinePayload:
    if not isinstance(data_url, str):
        raise InvalidDataUrlError("Invalid data URL")
    payload = InlinePayload.from_data_url(data_url)
    if not payload.mime_type.startswith("image/"):
        raise InvalidDataUrlError("Invalid data URL")
    return payload


def content_type_for(key: str) -> str:
    ext = Path(key).suffix.lstrip(".").lower()
    if ext == "jpg":
        ext = "jpeg"
    if ext == "svg":
        ext = "svg+xml"
    return f"image/{ext or 'png'}"


class StorageProxy:
    def __init__(self, settings: Settings, storage: ObjectStorageClient):
        self.settings = settings
        self.storage = storage

    def status(self) -> dict:
        return {"ok": True, "bucket": self.settings.bucket}

    async def save_document(self, body: bytes) -> bool:
        """Store the raw collection JSON as sent by the client."""
        return await self.storage.upload(self.settings.document_path, body, "application/json")

    async def upload_image(self, data_url: Any) -> str:
        """Upload an inline image and return its new key."""
        payload = parse_image_data_url(data_url)
        key = generate_image_key(payload.extension)
        if not await self.storage.upload_image(key, payload.data, payload.mime_type):
            raise StorageError(f"Object store upload failed for key {key}")
        logger.info("Proxied image upload", key=key, size=len(payload.data))
        return key

    async def delete_image(self, key: str) -> bool:
        return await self.storage.delete_image(validate_key(key))


class LocalFileStore:
    def __init__(self, settings: Settings, storage: ObjectStorageClient):
        self.settings = settings
        self.storage = storage
        self.data_dir = Path(settings.data_dir)
        self.images_dir = settings.images_dir
        self.document_file = settings.local_document_file

    def ensure_dirs(self) -> None:
        self.images_dir.mkdir(parents=True, exist_ok=True)

    def read_document(self) -> list:
        self.ensure_dirs()
        try:
            data = json.loads(self.document_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Local document is not valid JSON", path=str(self.document_file))
            return []
        return data if isinstance(data, list) else []

    def write_document(self, data: Any) -> None:
        self.ensure_dirs()
        fd, tmp = tempfile.mkstemp(dir=self.data_dir, prefix=".apartments-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.document_file)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def save_image(self, data_url: Any) -> str:
        payload = parse_image_data_url(data_url)
        self.ensure_dirs()
        key = generate_image_key(payload.extension)
        (self.images_dir / key).write_bytes(payload.data)
        return key

    async def read_image(self, key: str) -> Optional[bytes]:
        """Return image bytes, downloading and caching them on a local miss."""
        path = self.images_dir / validate_key(key)
        if path.exists():
            return path.read_bytes()

        logger.info("Image not found locally, downloading from object store", key=key)
        data = await self.storage.download(self.storage.image_url(key))
        if data is None:
            return None
        self.ensure_dirs()
        path.write_bytes(data)
        logger.info("Image downloaded", key=key, size=len(data))
        return data

    def delete_image(self, key: str) -> None:
        path = self.images_dir / validate_key(key)
        path.unlink(missing_ok=True)
