"""In-memory stand-ins for the object store, the bridge and the share service."""

import base64
import itertools
import json
import re
from typing import Optional
from unittest.mock import Mock
from urllib.parse import unquote

import httpx

from aptrack.services.context import AppContext, create_app_context
from aptrack.utils.settings import Settings

_DATA_URL_RE = re.compile(r"^data:(image/[\w+.-]+);base64,(.+)$", re.DOTALL)


class FakeRemote:
    """Object store + bridge + key/value service behind one httpx MockTransport.

    Every request and every direct Supabase storage call is recorded so tests
    can assert which backend was used.
    """

    def __init__(
        self,
        settings: Settings,
        proxy_live: bool = False,
        status_content_type: str = "application/json",
        status_code: int = 200,
    ):
        self.settings = settings
        self.proxy_live = proxy_live
        self.status_content_type = status_content_type
        self.status_code = status_code
        self.objects: dict[str, bytes] = {}
        self.kv: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self.direct_calls: list[tuple[str, object]] = []
        self.fail_direct_uploads = 0
        self.fail_proxy_uploads = 0
        self._keys = itertools.count(1)

    # -- inspection -----------------------------------------------------

    def calls(self, method: Optional[str] = None, path_prefix: str = "") -> list[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method) and r.url.path.startswith(path_prefix)
        ]

    @property
    def proxy_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == httpx.URL(self.settings.proxy_base_url).host]

    def document(self) -> Optional[list]:
        raw = self.objects.get(self.settings.document_path)
        return json.loads(raw) if raw is not None else None

    def put_document(self, collection: list) -> None:
        self.objects[self.settings.document_path] = json.dumps(collection).encode("utf-8")

    # -- httpx ----------------------------------------------------------

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host == httpx.URL(self.settings.proxy_base_url).host:
            return self._handle_proxy(request)
        if host == httpx.URL(self.settings.supabase_url).host:
            return self._handle_public(request)
        if host == httpx.URL(self.settings.share_url).host:
            return self._handle_kv(request)
        raise httpx.ConnectError(f"unknown host {host}", request=request)

    def _handle_proxy(self, request: httpx.Request) -> httpx.Response:
        if not self.proxy_live:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path
        if path == "/api/supabase/status" and request.method == "GET":
            return httpx.Response(
                self.status_code,
                content=b'{"ok": true}',
                headers={"content-type": self.status_content_type},
            )
        if path == "/api/supabase/data" and request.method == "POST":
            self.objects[self.settings.document_path] = request.content
            return httpx.Response(200, json={"ok": True})
        if path == "/api/supabase/image" and request.method == "POST":
            if self.fail_proxy_uploads:
                self.fail_proxy_uploads -= 1
                return httpx.Response(502, json={"error": "Supabase upload failed"})
            match = _DATA_URL_RE.match(json.loads(request.content)["dataUrl"])
            if not match:
                return httpx.Response(400, json={"error": "Invalid data URL"})
            key = f"proxy{next(self._keys)}.{match.group(1).split('/')[1]}"
            self.objects[self.settings.image_path(key)] = base64.b64decode(match.group(2))
            return httpx.Response(200, json={"key": key})
        if path.startswith("/api/supabase/image/") and request.method == "DELETE":
            key = unquote(path[len("/api/supabase/image/"):])
            self.objects.pop(self.settings.image_path(key), None)
            return httpx.Response(200, json={"ok": True})
        if path.startswith("/api/images/") and request.method == "DELETE":
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404, text="<html>not found</html>", headers={"content-type": "text/html"})

    def _handle_public(self, request: httpx.Request) -> httpx.Response:
        prefix = f"/storage/v1/object/public/{self.settings.bucket}/"
        path = request.url.path
        if request.method != "GET" or not path.startswith(prefix):
            return httpx.Response(400)
        data = self.objects.get(path[len(prefix):])
        if data is None:
            return httpx.Response(404, json={"error": "not_found"})
        return httpx.Response(200, content=data)

    def _handle_kv(self, request: httpx.Request) -> httpx.Response:
        code = request.url.path.lstrip("/")
        if request.method == "POST":
            self.kv[code] = request.content
            return httpx.Response(200, text="ok")
        if code not in self.kv:
            return httpx.Response(404)
        return httpx.Response(200, content=self.kv[code], headers={"content-type": "application/json"})

    # -- supabase -------------------------------------------------------

    def supabase(self) -> Mock:
        """Mock Supabase client whose storage bucket writes into ``objects``."""
        bucket = Mock()
        bucket.upload.side_effect = self._direct_upload
        bucket.remove.side_effect = self._direct_remove
        bucket.list.side_effect = self._direct_list

        client = Mock()
        client.storage.from_.return_value = bucket
        return client

    def _direct_upload(self, path, data, options=None):
        self.direct_calls.append(("upload", path))
        if self.fail_direct_uploads:
            self.fail_direct_uploads -= 1
            raise RuntimeError("storage unavailable")
        self.objects[path] = bytes(data)
        return {"Key": f"{self.settings.bucket}/{path}"}

    def _direct_remove(self, paths):
        self.direct_calls.append(("remove", list(paths)))
        for path in paths:
            self.objects.pop(path, None)
        return [{"name": p} for p in paths]

    def _direct_list(self, prefix, options=None):
        self.direct_calls.append(("list", prefix))
        items = []
        for path, data in self.objects.items():
            if path.startswith(prefix + "/"):
                items.append({"name": path.split("/")[-1], "id": path, "metadata": {"size": len(data)}})
        # folder placeholder, no id
        items.append({"name": ".emptyFolderPlaceholder", "id": None, "metadata": None})
        return items


def build_context(settings: Settings, remote: FakeRemote, **kwargs) -> AppContext:
    """App context wired to a fake remote, with no retry delay."""
    kwargs.setdefault("retry_delay", 0)
    return create_app_context(
        settings,
        supabase=remote.supabase(),
        http_client=remote.client(),
        **kwargs
    )
