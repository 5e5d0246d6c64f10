"""Base request handler shared by the api/ bridge endpoints."""

import asyncio
import json
from http.server import BaseHTTPRequestHandler
from typing import Any, Optional
from urllib.parse import unquote, urlsplit

from aptrack.utils.logging import correlation_context, get_structured_logger
from aptrack.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)

_bridge = None


def get_bridge():
    """Get or create the process-wide bridge services."""
    global _bridge
    if _bridge is None:
        from aptrack.services.bridge import LocalFileStore, StorageProxy
        from aptrack.services.storage_client import ObjectStorageClient
        from aptrack.utils.settings import Settings

        settings = Settings.from_env()
        storage = ObjectStorageClient(settings)
        _bridge = BridgeServices(StorageProxy(settings, storage), LocalFileStore(settings, storage))
    return _bridge


class BridgeServices:
    def __init__(self, proxy, files):
        self.proxy = proxy
        self.files = files


class BridgeRequestHandler(BaseHTTPRequestHandler):
    """JSON helpers plus access to the bridge services."""

    @property
    def bridge(self) -> BridgeServices:
        return getattr(self.server, "bridge", None) or get_bridge()

    @property
    def route_path(self) -> str:
        return urlsplit(self.path).path

    def path_key(self, prefix: str) -> str:
        """Decoded path segment following ``prefix``."""
        return unquote(self.route_path[len(prefix):])

    def read_body(self) -> bytes:
        length = int(self.headers.get('Content-Length', 0) or 0)
        return self.rfile.read(length) if length > 0 else b""

    def read_json(self) -> Any:
        return json.loads(self.read_body().decode('utf-8'))

    def send_json(self, payload: Any, status: int = 200) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def send_error_json(self, status: int, message: str) -> None:
        self.send_json({"error": message}, status=status)

    def send_bytes(self, body: bytes, content_type: str, cache_control: Optional[str] = None) -> None:
        self.send_response(200)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        if cache_control:
            self.send_header('Cache-Control', cache_control)
        self.end_headers()
        self.wfile.write(body)

    def run_async(self, coro):
        with correlation_context(self.headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER)):
            return asyncio.run(coro)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("Bridge request", client=self.address_string(), request=format % args)
