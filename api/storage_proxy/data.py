"""Document proxy endpoint: POST /api/supabase/data."""

import json

from aptrack.utils.http_handler import BridgeRequestHandler
from aptrack.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class handler(BridgeRequestHandler):
    """Writes the full collection to the object store with the server-held key."""

    def do_POST(self):
        try:
            body = self.read_body()
            if not isinstance(json.loads(body.decode('utf-8') or "null"), list):
                self.send_error_json(400, "collection must be a JSON array")
                return
            ok = self.run_async(self.bridge.proxy.save_document(body))
            self.send_json({"ok": ok})
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.send_error_json(400, f"invalid JSON: {e}")
        except Exception as e:
            logger.error("Document proxy failed", error=str(e), exc_info=True)
            self.send_error_json(500, str(e))
