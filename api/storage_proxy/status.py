"""Bridge status endpoint: GET /api/supabase/status."""

from aptrack.utils.http_handler import BridgeRequestHandler


class handler(BridgeRequestHandler):
    """Answers with JSON so clients can tell the bridge from a static host."""

    def do_GET(self):
        self.send_json(self.bridge.proxy.status())
