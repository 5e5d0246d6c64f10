"""Local document endpoints: GET/POST /api/apartments."""

import json

from aptrack.utils.http_handler import BridgeRequestHandler
from aptrack.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class handler(BridgeRequestHandler):
    """Reads and writes data/apartments.json on the bridge host."""

    def do_GET(self):
        self.send_json(self.bridge.files.read_document())

    def do_POST(self):
        try:
            data = self.read_json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.send_error_json(400, str(e))
            return
        try:
            self.bridge.files.write_document(data)
        except OSError as e:
            logger.error("Local document write failed", error=str(e))
            self.send_error_json(500, str(e))
            return
        self.send_json({"ok": True})
