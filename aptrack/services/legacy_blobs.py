"""Device-local image store for pre-migration ``idb-`` references.

Keys in this store never leave the device. The store is kept so that old
collections still resolve on the device that wrote them.
"""

import asyncio
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Optional

from aptrack.models.image_ref import InlinePayload
from aptrack.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS images (
    key TEXT PRIMARY KEY,
    mime_type TEXT NOT NULL,
    blob BLOB NOT NULL
)
"""


class LegacyBlobStore:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.execute(SCHEMA)
        return conn

    def _get(self, key: str) -> Optional[InlinePayload]:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT mime_type, blob FROM images WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return InlinePayload(data=bytes(row[1]), mime_type=row[0])

    def _put(self, key: str, payload: InlinePayload) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                "INSERT OR REPLACE INTO images (key, mime_type, blob) VALUES (?, ?, ?)",
                (key, payload.mime_type, payload.data),
            )

    def _delete(self, key: str) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute("DELETE FROM images WHERE key = ?", (key,))

    def _exists(self, key: str) -> bool:
        with closing(self._connect()) as conn:
            return conn.execute("SELECT 1 FROM images WHERE key = ?", (key,)).fetchone() is not None

    async def get(self, key: str) -> Optional[InlinePayload]:
        return await asyncio.to_thread(self._get, key)

    async def put(self, key: str, payload: InlinePayload) -> None:
        await asyncio.to_thread(self._put, key, payload)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)
        logger.debug("Legacy blob deleted", key=key)

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._exists, key)
