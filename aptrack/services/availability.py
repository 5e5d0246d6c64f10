"""Backend availability detection.

Decides once per process whether the bridge proxy is reachable. Static hosts
are rejected without a request; otherwise the status endpoint must answer
with a success code and a JSON content type. Static hosting commonly rewrites
unknown paths to an HTML shell with status 200, so the status code alone
proves nothing.
"""

import asyncio
from typing import Optional

import httpx

from aptrack.services.http_session import HttpSession, is_json_response
from aptrack.utils.logging import get_structured_logger
from aptrack.utils.settings import Settings

logger = get_structured_logger(__name__)

STATUS_PATH = "/api/supabase/status"


class BackendAvailability:
    """Memoized bridge reachability check, shared by the resolver and sync engine."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._http_client = http_client
        self._available: Optional[bool] = None
        self._lock = asyncio.Lock()

    @property
    def status_url(self) -> str:
        return f"{self.settings.proxy_base_url}{STATUS_PATH}"

    @property
    def checked(self) -> bool:
        return self._available is not None

    def is_static_host(self) -> bool:
        host = self.settings.hostname.split(":", 1)[0].lower()
        return any(host == suffix or host.endswith("." + suffix) for suffix in self.settings.static_host_suffixes)

    async def is_available(self) -> bool:
        """Return True when the bridge proxy answered the status check."""
        if self._available is not None:
            return self._available

        async with self._lock:
            if self._available is None:
                self._available = await self._check()
                logger.info(
                    "Backend availability resolved",
                    available=self._available,
                    hostname=self.settings.hostname
                )
        return self._available

    async def _check(self) -> bool:
        if self.is_static_host():
            logger.debug("Static host detected, skipping status check", hostname=self.settings.hostname)
            return False

        try:
            async with HttpSession(self._http_client, timeout=self.settings.status_timeout_seconds) as client:
                response = await client.get(self.status_url, timeout=self.settings.status_timeout_seconds)
        except Exception as e:
            logger.debug("Status check failed", url=self.status_url, error=str(e))
            return False

        if not response.is_success:
            return False
        if not is_json_response(response):
            logger.debug(
                "Status check returned non-JSON content",
                url=self.status_url,
                content_type=response.headers.get("content-type")
            )
            return False
        return True

    def reset(self) -> None:
        """Forget the cached result so the next call checks again."""
        self._available = None
