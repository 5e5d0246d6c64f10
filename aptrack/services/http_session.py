"""Shared httpx client handling."""

from typing import Optional

import httpx


class HttpSession:
    """Async context manager yielding an httpx client.

    An injected client is reused and left open; otherwise a client is created
    for the duration of the block.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self._injected = client
        self._timeout = timeout
        self._owned: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> httpx.AsyncClient:
        if self._injected is not None:
            return self._injected
        self._owned = httpx.AsyncClient(timeout=self._timeout)
        return self._owned

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owned is not None:
            await self._owned.aclose()
            self._owned = None
        return False


def is_json_response(response: httpx.Response) -> bool:
    """True when the declared content type is JSON (``application/json`` or ``*+json``)."""
    content_type = response.headers.get("content-type", "").split(";", 1)[0].strip().lower()
    return content_type == "application/json" or content_type.endswith("+json")
