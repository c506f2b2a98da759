"""HTTP server for leaf-ca using stdlib http.server.

Routes:
    POST   /api/issueCertificate   — issue a leaf certificate
    GET    /health                 — health check

Usage:
    python -m leaf_ca.server.app --settings local.settings.json
    python -m leaf_ca.server.app --settings local.settings.json --port 9000
"""
from __future__ import annotations

import argparse
import json
import logging
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from leaf_ca.server import routes
from leaf_ca.settings import IssuerSettings, build_certificate_issuer, load_settings

logger = logging.getLogger(__name__)

ISSUE_CERTIFICATE_PATH = "/api/issueCertificate"


class LeafCAHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the leaf-ca server.

    All request bodies and responses use JSON.
    """

    def log_message(self, format: str, *args: object) -> None:
        """Override to route access logs through the Python logging system."""
        logger.debug(format, *args)

    # ── GET ───────────────────────────────────────────────────────────────────

    def do_GET(self) -> None:
        """Handle all GET requests by routing on the URL path."""
        path = urllib.parse.urlparse(self.path).path.rstrip("/")

        if path == "/health":
            status, data = routes.handle_health()
            self._send_json(status, data)
        else:
            self._send_json(
                404, {"error": "Not found", "detail": f"No route for GET {path}"}
            )

    # ── POST ──────────────────────────────────────────────────────────────────

    def do_POST(self) -> None:
        """Handle all POST requests by routing on the URL path."""
        path = urllib.parse.urlparse(self.path).path.rstrip("/")

        body = self._read_json_body()
        if body is None:
            return

        if path == ISSUE_CERTIFICATE_PATH:
            status, data = routes.handle_issue_certificate(body)
            self._send_json(status, data)
        else:
            self._send_json(
                404, {"error": "Not found", "detail": f"No route for POST {path}"}
            )

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _send_json(self, status: int, data: dict[str, object]) -> None:
        """Serialize *data* to JSON and send an HTTP response with *status*."""
        body = json.dumps(data, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_json_body(self) -> dict[str, object] | None:
        """Read and parse the JSON request body.

        Returns None (and sends a 400 error response) if parsing fails.
        """
        content_length = int(self.headers.get("Content-Length", 0))
        if content_length == 0:
            return {}

        raw = self.rfile.read(content_length)
        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            self._send_json(400, {"error": "Invalid JSON", "detail": str(exc)})
            return None
        if not isinstance(parsed, dict):
            self._send_json(400, {"error": "Invalid JSON", "detail": "Body must be an object"})
            return None
        return parsed


def create_server(host: str = "127.0.0.1", port: int = 8080) -> ThreadingHTTPServer:
    """Create (but do not start) the leaf-ca HTTP server.

    Each request is handled on its own thread; concurrent issuances
    coordinate only through the serial counter store.

    Parameters
    ----------
    host:
        Bind address (default ``"127.0.0.1"``).
    port:
        TCP port to listen on (default 8080).

    Returns
    -------
    ThreadingHTTPServer
        A configured server instance ready to call ``serve_forever()`` on.
    """
    server = ThreadingHTTPServer((host, port), LeafCAHandler)
    logger.info("leaf-ca server created at http://%s:%d", host, port)
    return server


def run_server(host: str = "127.0.0.1", port: int = 8080) -> None:
    """Create and run the leaf-ca HTTP server (blocking)."""
    server = create_server(host=host, port=port)
    logger.info("Serving leaf-ca on http://%s:%d, press Ctrl-C to stop", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down leaf-ca server.")
    finally:
        server.server_close()


def resolve_bind_address(
    args: argparse.Namespace, settings: IssuerSettings
) -> tuple[str, int]:
    """Return the host and port to bind, preferring command-line values over settings."""
    host = args.host if args.host is not None else settings.host
    port = args.port if args.port is not None else settings.port
    return host, port


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="leaf-ca HTTP server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--settings", type=Path, default=None, help="JSON settings file")
    parser.add_argument("--host", default=None, help="Bind address (overrides settings)")
    parser.add_argument("--port", type=int, default=None, help="TCP port (overrides settings)")
    return parser


if __name__ == "__main__":
    args = _build_arg_parser().parse_args()
    settings = load_settings(args.settings)
    logging.basicConfig(level=getattr(logging, settings.log_level))
    routes.configure(build_certificate_issuer(settings))
    host, port = resolve_bind_address(args, settings)
    run_server(host=host, port=port)
