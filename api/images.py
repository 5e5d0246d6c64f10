"""Local image endpoints.

POST   /api/images        {"dataUrl": ...} -> {"key": ...}
GET    /api/images/<key>  image bytes, pulled from the object store on a miss
DELETE /api/images/<key>  -> {"ok": true}
"""

import json

from aptrack.services.bridge import IMAGE_CACHE_CONTROL, content_type_for
from aptrack.utils.errors import InvalidDataUrlError
from aptrack.utils.http_handler import BridgeRequestHandler
from aptrack.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

PREFIX = "/api/images/"


class handler(BridgeRequestHandler):

    def do_POST(self):
        try:
            body = self.read_json()
            data_url = body.get("dataUrl") if isinstance(body, dict) else None
            key = self.bridge.files.save_image(data_url)
        except (json.JSONDecodeError, UnicodeDecodeError, InvalidDataUrlError):
            self.send_error_json(400, "Invalid data URL")
            return
        except OSError as e:
            logger.error("Local image write failed", error=str(e))
            self.send_error_json(500, str(e))
            return
        self.send_json({"key": key})

    def do_GET(self):
        key = self.path_key(PREFIX)
        try:
            data = self.run_async(self.bridge.files.read_image(key))
        except ValueError:
            data = None
        if data is None:
            self.send_error_json(404, "Not found")
            return
        self.send_bytes(data, content_type_for(key), cache_control=IMAGE_CACHE_CONTROL)

    def do_DELETE(self):
        try:
            self.bridge.files.delete_image(self.path_key(PREFIX))
        except ValueError:
            self.send_error_json(400, "Invalid image key")
            return
        except OSError as e:
            self.send_error_json(500, str(e))
            return
        self.send_json({"ok": True})
