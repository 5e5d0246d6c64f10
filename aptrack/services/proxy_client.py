"""Client for the bridge proxy endpoints (server mode)."""

import json
from typing import Optional
from urllib.parse import quote

import httpx

from aptrack.services.http_session import HttpSession
from aptrack.utils.errors import ProxyError
from aptrack.utils.logging import get_structured_logger
from aptrack.utils.settings import Settings

logger = get_structured_logger(__name__)


class ProxyClient:
    """Talks to the bridge, which holds the storage credentials server-side."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._http_client = http_client

    def _url(self, path: str) -> str:
        return f"{self.settings.proxy_base_url}{path}"

    def image_url(self, key: str) -> str:
        """URL of the bridge's local-file image endpoint (pull-through cached)."""
        return self._url(f"/api/images/{quote(key, safe='')}")

    async def save_document(self, collection: list[dict]) -> bool:
        try:
            async with HttpSession(self._http_client) as client:
                response = await client.post(
                    self._url("/api/supabase/data"),
                    content=json.dumps(collection, ensure_ascii=False).encode("utf-8"),
                    headers={"Content-Type": "application/json"},
                )
        except Exception as e:
            logger.warning("Proxy document save failed", error=str(e))
            return False
        if not response.is_success:
            return False
        try:
            return bool(response.json().get("ok", True))
        except (ValueError, AttributeError):
            return True

    async def upload_image(self, data_url: str) -> str:
        """Upload an inline image through the proxy; returns the minted key."""
        try:
            async with HttpSession(self._http_client) as client:
                response = await client.post(self._url("/api/supabase/image"), json={"dataUrl": data_url})
        except Exception as e:
            raise ProxyError(f"Proxy image upload failed: {e}") from e

        if not response.is_success:
            raise ProxyError(f"Proxy image upload failed with status {response.status_code}")
        try:
            key = response.json()["key"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProxyError("Proxy image upload returned no key") from e
        if not isinstance(key, str) or not key:
            raise ProxyError("Proxy image upload returned an empty key")
        return key

    async def delete_image(self, key: str) -> bool:
        """Delete an object-store image through the proxy."""
        return await self._delete(f"/api/supabase/image/{quote(key, safe='')}")

    async def delete_local_image(self, key: str) -> bool:
        """Delete an image from the bridge's local file store."""
        return await self._delete(f"/api/images/{quote(key, safe='')}")

    async def _delete(self, path: str) -> bool:
        try:
            async with HttpSession(self._http_client) as client:
                response = await client.delete(self._url(path))
        except Exception as e:
            logger.warning("Proxy delete failed", path=path, error=str(e))
            return False
        return response.is_success
