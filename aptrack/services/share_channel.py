"""Share channel - broadcast the collection through a public key/value service.

Optional and independent of the object store. When a share code is set the
collection is pulled every few seconds and pushed after every save. Whichever
write lands last wins; there is no reconciliation with the primary document.
"""

import asyncio
import json
import re
from typing import Any, Optional

import httpx

from aptrack.services.document_sync import DocumentSyncEngine
from aptrack.services.http_session import HttpSession
from aptrack.services.local_cache import SYNC_CODE_KEY, LocalCache
from aptrack.utils.logging import get_structured_logger
from aptrack.utils.settings import Settings

logger = get_structured_logger(__name__)


def clean_sync_code(code: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "", code or "")


class ShareChannel:
    def __init__(
        self,
        settings: Settings,
        engine: DocumentSyncEngine,
        cache: LocalCache,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.engine = engine
        self.cache = cache
        self._http_client = http_client
        self._poll_task: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()
        engine.share_channel = self

    @property
    def code(self) -> str:
        value = self.cache.get(SYNC_CODE_KEY)
        return value if isinstance(value, str) else ""

    @property
    def active(self) -> bool:
        return bool(self.code)

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _url(self, code: str) -> str:
        return f"{self.settings.share_url}/{code}"

    def set_code(self, code: str) -> str:
        """Store a share code (cleaned); an empty code disables the channel."""
        cleaned = clean_sync_code(code)
        if cleaned:
            self.cache.set(SYNC_CODE_KEY, cleaned)
        else:
            self.cache.remove(SYNC_CODE_KEY)
        logger.info("Share code updated", enabled=bool(cleaned))
        return cleaned

    async def fetch(self) -> bool:
        """Pull the shared collection; adopt it if it is a JSON array."""
        code = self.code
        if not code:
            return False
        try:
            async with HttpSession(self._http_client) as client:
                response = await client.get(self._url(code))
            if not response.is_success:
                return False
            data = response.json()
        except Exception as e:
            logger.debug("Share channel fetch failed", error=str(e))
            return False
        if not isinstance(data, list):
            return False
        self.engine.replace_from_remote(data)
        return True

    async def push(self, collection: list[Any]) -> bool:
        code = self.code
        if not code:
            return False
        try:
            async with HttpSession(self._http_client) as client:
                response = await client.post(
                    self._url(code),
                    content=json.dumps(collection, ensure_ascii=False).encode("utf-8"),
                )
        except Exception as e:
            logger.debug("Share channel push failed", error=str(e))
            return False
        return response.is_success

    def schedule_push(self, collection: list[Any]) -> None:
        """Fire-and-forget push, unordered relative to primary saves."""
        if not self.active:
            return
        task = asyncio.create_task(self.push(collection))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _poll_loop(self) -> None:
        while True:
            await self.fetch()
            await asyncio.sleep(self.settings.share_interval_seconds)

    def start(self) -> None:
        """Start polling if a code is set and no poller is running."""
        if not self.active or self.polling:
            return
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info("Share channel polling started", interval_seconds=self.settings.share_interval_seconds)

    async def stop(self) -> None:
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        try:
            await self._poll_task
        except asyncio.CancelledError:
            pass
        self._poll_task = None
        logger.info("Share channel polling stopped")

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
