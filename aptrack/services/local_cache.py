"""Device-local key/value cache with a byte quota.

Holds the mirrored collection (``apartments``) and the share code
(``syncCode``). Values are JSON; the whole cache is one file.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

from aptrack.utils.errors import QuotaExceededError
from aptrack.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

COLLECTION_KEY = "apartments"
SYNC_CODE_KEY = "syncCode"


class LocalCache:
    def __init__(self, path: Path, quota_bytes: int = 5 * 1024 * 1024):
        self.path = Path(path)
        self.quota_bytes = quota_bytes
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Local cache file is corrupt, ignoring", path=str(self.path))
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, entries: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".cache-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entries, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._read_all().get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return None

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``; raises QuotaExceededError when over quota."""
        encoded = json.dumps(value, ensure_ascii=False)
        with self._lock:
            entries = self._read_all()
            entries[key] = encoded
            size = sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in entries.items())
            if size > self.quota_bytes:
                raise QuotaExceededError(
                    f"Local cache quota exceeded: {size} > {self.quota_bytes} bytes"
                )
            self._write_all(entries)

    def remove(self, key: str) -> None:
        with self._lock:
            entries = self._read_all()
            if entries.pop(key, None) is not None:
                self._write_all(entries)
