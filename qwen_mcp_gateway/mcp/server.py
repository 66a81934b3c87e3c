"""HTTP transport for the MCP gateway.

A small threaded HTTP server in front of ``McpDispatcher``:

- ``POST`` (any path) whose JSON body has a ``method`` field is an MCP request;
  the JSON-RPC envelope comes back with HTTP 200 whatever the outcome.
- ``GET /health`` returns liveness status and an epoch-millisecond timestamp.
- Anything else gets a JSON 404. A body that is not JSON gets the JSON-RPC
  parse error with HTTP 400.

Each request runs on its own thread.
"""

from __future__ import annotations

import json
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional, Tuple, Type

from ..core.exceptions import error_envelope, generate_request_id, parse_error_envelope
from ..core.logging_config import PerformanceLogger, get_logger
from ..monitoring.health import HealthChecker
from .handlers import McpDispatcher

__all__ = ["GatewayServer", "start_http_server"]

HEALTH_PATH = "/health"

# Server tuning constants
_SHUTDOWN_JOIN_SEC = 2.0
_MAX_BODY_BYTES = 1024 * 1024

_LOGGER = get_logger("mcp.server")


def _encode(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def _make_handler(
    dispatcher: McpDispatcher, health_checker: Optional[HealthChecker]
) -> Type[BaseHTTPRequestHandler]:
    class _GatewayHandler(BaseHTTPRequestHandler):
        server_version = "QwenMCPGateway/0.1"
        protocol_version = "HTTP/1.1"

        def log_message(self, fmt: str, *args: Any) -> None:
            _LOGGER.debug(fmt % args, extra={"client": self.client_address[0]})

        def do_GET(self) -> None:  # noqa: N802 - http.server naming
            if self._path() == HEALTH_PATH and health_checker is not None:
                self._send_json(HTTPStatus.OK, health_checker.get_health_status())
                return
            self._send_not_found()

        def do_POST(self) -> None:  # noqa: N802 - http.server naming
            try:
                body = self._read_json_body()
            except ValueError as exc:
                _LOGGER.warning("Rejected unparseable request body", extra={"error": str(exc)})
                self.close_connection = True
                self._send_json(HTTPStatus.BAD_REQUEST, parse_error_envelope())
                return

            if isinstance(body, dict) and body.get("method"):
                context = {"correlation_id": generate_request_id("mcp"), "method": body.get("method")}
                with PerformanceLogger(_LOGGER, "mcp_request", **context):
                    response = dispatcher.dispatch(body)
                try:
                    data = _encode(response)
                except (TypeError, ValueError) as exc:
                    _LOGGER.exception("MCP response could not be serialized", extra=context)
                    data = _encode(error_envelope(body.get("id"), exc))
                self._send_body(HTTPStatus.OK, data)
                return
            self._send_not_found()

        # --- helpers -------------------------------------------------------
        def _path(self) -> str:
            return self.path.split("?", 1)[0]

        def _read_json_body(self) -> Any:
            length = int(self.headers.get("Content-Length") or 0)
            if length < 0 or length > _MAX_BODY_BYTES:
                raise ValueError(f"invalid Content-Length: {length}")
            raw = self.rfile.read(length) if length else b""
            if not raw.strip():
                return {}
            return json.loads(raw.decode("utf-8"))

        def _send_not_found(self) -> None:
            self._send_json(HTTPStatus.NOT_FOUND, {"error": "Not Found"})

        def _send_json(self, status: HTTPStatus, payload: Dict[str, Any]) -> None:
            self._send_body(status, _encode(payload))

        def _send_body(self, status: HTTPStatus, data: bytes) -> None:
            self.send_response(status)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

    return _GatewayHandler


class GatewayServer:
    """Threaded HTTP server hosting the MCP endpoint and the health check."""

    def __init__(
        self,
        host: str,
        port: int,
        dispatcher: McpDispatcher,
        health_checker: Optional[HealthChecker] = None,
    ) -> None:
        # Bind explicitly to IPv4 when host is 'localhost' to avoid IPv6-only bind.
        self.host = self._normalize_host(host)
        self.port = port
        self._httpd = ThreadingHTTPServer(
            (self.host, self.port), _make_handler(dispatcher, health_checker)
        )
        self._httpd.daemon_threads = True
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        """Actual bound address (useful when port 0 was requested)."""
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        """Serve in a background thread."""
        t = threading.Thread(target=self._httpd.serve_forever, name="mcp-http", daemon=True)
        t.start()
        self._thread = t

    def serve_forever(self) -> None:
        """Serve on the calling thread until interrupted."""
        self._httpd.serve_forever()

    def stop(self) -> None:
        # shutdown() blocks unless serve_forever is running on another thread
        if self._thread is not None:
            self._httpd.shutdown()
            self._thread.join(timeout=_SHUTDOWN_JOIN_SEC)
            self._thread = None
        self._httpd.server_close()

    @staticmethod
    def _normalize_host(host: str) -> str:
        return "127.0.0.1" if host in {"localhost", "::1"} else host


def start_http_server(
    host: str,
    port: int,
    dispatcher: McpDispatcher,
    health_checker: Optional[HealthChecker] = None,
) -> GatewayServer:
    """Start the gateway in background threads.

    Returns:
        Server instance; call ``stop()`` to shut it down.
    """
    server = GatewayServer(host, port, dispatcher, health_checker)
    server.start()
    _LOGGER.info("MCP gateway listening", extra={"host": server.address[0], "port": server.address[1]})
    return server
