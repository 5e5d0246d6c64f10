"""Image proxy endpoints.

POST   /api/supabase/image        {"dataUrl": ...} -> {"key": ...}
DELETE /api/supabase/image/<key>  -> {"ok": true}
"""

import json

from aptrack.utils.errors import InvalidDataUrlError, StorageError
from aptrack.utils.http_handler import BridgeRequestHandler
from aptrack.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

PREFIX = "/api/supabase/image/"


class handler(BridgeRequestHandler):

    def do_POST(self):
        try:
            body = self.read_json()
            data_url = body.get("dataUrl") if isinstance(body, dict) else None
            key = self.run_async(self.bridge.proxy.upload_image(data_url))
            self.send_json({"key": key})
        except (json.JSONDecodeError, UnicodeDecodeError, InvalidDataUrlError):
            self.send_error_json(400, "Invalid data URL")
        except StorageError as e:
            logger.warning("Proxied image upload failed", error=str(e))
            self.send_error_json(502, "Object store upload failed")
        except Exception as e:
            logger.error("Image proxy failed", error=str(e), exc_info=True)
            self.send_error_json(500, str(e))

    def do_DELETE(self):
        try:
            key = self.path_key(PREFIX)
            self.run_async(self.bridge.proxy.delete_image(key))
        except ValueError:
            self.send_error_json(400, "Invalid image key")
            return
        # Best-effort: always ok.
        self.send_json({"ok": True})
