"""Run the bridge endpoints locally on one HTTP server.

    aptrack-bridge --port 5173
"""

from http.server import ThreadingHTTPServer
from typing import Optional

import typer

from api import apartments, images
from api.storage_proxy import data, image, status
from aptrack.utils.http_handler import BridgeRequestHandler, BridgeServices, get_bridge
from aptrack.utils.logging import get_structured_logger, setup_logging

logger = get_structured_logger(__name__)

# (path, exact match?, handler class); the first match wins.
ROUTES = [
    ("/api/supabase/status", True, status.handler),
    ("/api/supabase/data", True, data.handler),
    ("/api/supabase/image", True, image.handler),
    (image.PREFIX, False, image.handler),
    ("/api/apartments", True, apartments.handler),
    ("/api/images", True, images.handler),
    (images.PREFIX, False, images.handler),
]


def find_route(path: str):
    for route, exact, handler_cls in ROUTES:
        if (exact and path == route) or (not exact and path.startswith(route) and len(path) > len(route)):
            return handler_cls
    return None


class BridgeRouter(BridgeRequestHandler):
    """Dispatches each request to the matching api/ handler's method."""

    def _dispatch(self, method: str) -> None:
        handler_cls = find_route(self.route_path)
        if handler_cls is None:
            self.send_error_json(404, "Not found")
            return
        action = getattr(handler_cls, f"do_{method}", None)
        if action is None:
            self.send_error_json(405, "Method not allowed")
            return
        action(self)

    def do_GET(self):
        self._dispatch("GET")

    def do_POST(self):
        self._dispatch("POST")

    def do_DELETE(self):
        self._dispatch("DELETE")


class BridgeServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, bridge: Optional[BridgeServices] = None):
        super().__init__(address, BridgeRouter)
        self.bridge = bridge


def create_server(host: str = "127.0.0.1", port: int = 5173, bridge: Optional[BridgeServices] = None) -> BridgeServer:
    return BridgeServer((host, port), bridge=bridge or get_bridge())


app = typer.Typer(help="Serve the listing bridge endpoints.")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind."),
    port: int = typer.Option(5173, help="Port to listen on."),
) -> None:
    """Run the bridge until interrupted."""
    setup_logging()
    server = create_server(host, port)
    logger.info("Bridge listening", host=host, port=server.server_address[1])
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
