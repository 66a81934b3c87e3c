"""Tests for the Qwen Cloud client against a local stub HTTP server.

Covers request shape (payload, bearer auth), reply extraction and the three
failure classes: provider-rejected, unreachable and local.
"""

import json
import logging
import socket
import socketserver
import threading
import time
from http.server import BaseHTTPRequestHandler

import pytest

from qwen_mcp_gateway.core.exceptions import (
    ErrorCategory,
    ProviderRejectedError,
    UpstreamError,
    UpstreamLocalError,
    UpstreamUnreachableError,
)
from qwen_mcp_gateway.llm.client import QwenClient, extract_reply_text

HISTORY = [
    {"role": "user", "content": "Hola"},
    {"role": "assistant", "content": "Hola, ¿en qué puedo ayudarte?"},
    {"role": "user", "content": "2+2?"},
]


def _json_bytes(obj) -> bytes:
    return json.dumps(obj).encode("utf-8")


def _make_handler(recorder: dict):
    class _Handler(BaseHTTPRequestHandler):
        server_version = "TestHTTP/1.0"

        def log_message(self, fmt, *args):  # silence test server logs
            return

        def _reply(self, status: int, body: bytes, content_type: str = "application/json"):
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_POST(self):
            length = int(self.headers.get("Content-Length") or 0)
            recorder["body"] = json.loads(self.rfile.read(length) or b"null")
            recorder["auth"] = self.headers.get("Authorization")
            recorder["content_type"] = self.headers.get("Content-Type")
            recorder["path"] = self.path

            if self.path.startswith("/ok"):
                self._reply(200, _json_bytes({
                    "output": {"choices": [{"message": {"role": "assistant", "content": "4"}}]},
                    "usage": {"total_tokens": 12},
                }))
            elif self.path.startswith("/reject"):
                self._reply(401, _json_bytes({"code": "InvalidApiKey", "message": "Invalid API-key provided."}))
            elif self.path.startswith("/text-error"):
                self._reply(500, b"upstream exploded", content_type="text/plain")
            elif self.path.startswith("/bad-shape"):
                self._reply(200, _json_bytes({"output": {"text": "legacy shape"}}))
            elif self.path.startswith("/not-json"):
                self._reply(200, b"<html>oops</html>", content_type="text/html")
            elif self.path.startswith("/slow"):
                time.sleep(1.0)
                self._reply(200, _json_bytes({}))
            else:
                self._reply(404, b"{}")

    return _Handler


@pytest.fixture
def qwen_stub_server():
    recorder: dict = {}
    handler = _make_handler(recorder)
    socketserver.TCPServer.allow_reuse_address = True
    with socketserver.ThreadingTCPServer(("127.0.0.1", 0), handler) as httpd:
        httpd.daemon_threads = True
        port = httpd.server_address[1]
        base_url = f"http://127.0.0.1:{port}"
        t = threading.Thread(target=httpd.serve_forever, daemon=True)
        t.start()
        # tiny wait to ensure server is ready in slow CI
        time.sleep(0.02)
        try:
            yield base_url, recorder
        finally:
            httpd.shutdown()
            t.join(timeout=2)


def _closed_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestQwenClientRequests:
    def test_sends_history_model_and_bearer_key(self, qwen_stub_server):
        base_url, recorder = qwen_stub_server
        client = QwenClient(endpoint=f"{base_url}/ok", timeout=5)

        reply = client.generate("qwen-max", HISTORY, "sk-test")

        assert reply == "4"
        assert recorder["auth"] == "Bearer sk-test"
        assert recorder["content_type"].startswith("application/json")
        assert recorder["body"] == {"model": "qwen-max", "input": {"messages": HISTORY}}

    def test_build_payload_keeps_only_role_and_content(self):
        payload = QwenClient.build_payload("qwen-plus", [{"role": "user", "content": "x", "extra": "y"}])
        assert payload == {"model": "qwen-plus", "input": {"messages": [{"role": "user", "content": "x"}]}}


class TestQwenClientFailures:
    def test_http_error_is_provider_rejected_with_status_and_body(self, qwen_stub_server):
        base_url, _ = qwen_stub_server
        client = QwenClient(endpoint=f"{base_url}/reject", timeout=5)

        with pytest.raises(ProviderRejectedError) as excinfo:
            client.generate("qwen-max", HISTORY, "bad-key")

        err = excinfo.value
        assert err.status_code == 401
        assert err.body == {"code": "InvalidApiKey", "message": "Invalid API-key provided."}
        assert err.message.startswith("Qwen Cloud Error: 401 - ")
        assert "InvalidApiKey" in err.message
        assert err.category is ErrorCategory.UPSTREAM

    def test_non_json_error_body_is_embedded_as_text(self, qwen_stub_server):
        base_url, _ = qwen_stub_server
        client = QwenClient(endpoint=f"{base_url}/text-error", timeout=5)

        with pytest.raises(ProviderRejectedError) as excinfo:
            client.generate("qwen-max", HISTORY, "k")

        assert excinfo.value.status_code == 500
        assert excinfo.value.message == 'Qwen Cloud Error: 500 - "upstream exploded"'

    def test_connection_refused_is_unreachable(self):
        client = QwenClient(endpoint=f"http://127.0.0.1:{_closed_port()}/", timeout=2)

        with pytest.raises(UpstreamUnreachableError) as excinfo:
            client.generate("qwen-max", HISTORY, "k")

        assert excinfo.value.message == "Could not connect to Qwen Cloud"
        assert excinfo.value.cause is not None

    def test_timeout_is_unreachable(self, qwen_stub_server):
        base_url, _ = qwen_stub_server
        client = QwenClient(endpoint=f"{base_url}/slow", timeout=0.2)

        with pytest.raises(UpstreamUnreachableError):
            client.generate("qwen-max", HISTORY, "k")

    def test_invalid_endpoint_is_local_error(self):
        client = QwenClient(endpoint="not-a-url", timeout=2)

        with pytest.raises(UpstreamLocalError) as excinfo:
            client.generate("qwen-max", HISTORY, "k")

        assert excinfo.value.message.startswith("General error: ")

    @pytest.mark.parametrize("path", ["/bad-shape", "/not-json"])
    def test_unreadable_success_payload_is_local_error(self, qwen_stub_server, path):
        base_url, _ = qwen_stub_server
        client = QwenClient(endpoint=f"{base_url}{path}", timeout=5)

        with pytest.raises(UpstreamLocalError):
            client.generate("qwen-max", HISTORY, "k")

    def test_each_failure_logged_once_at_error(self, qwen_stub_server, caplog):
        base_url, _ = qwen_stub_server
        rejected = QwenClient(endpoint=f"{base_url}/reject", timeout=5)
        unreachable = QwenClient(endpoint=f"http://127.0.0.1:{_closed_port()}/", timeout=2)

        for client, expected in (
            (rejected, "Qwen Cloud Error: 401"),
            (unreachable, "Could not connect to Qwen Cloud"),
        ):
            caplog.clear()
            with caplog.at_level(logging.DEBUG, logger="qwen.client"):
                with pytest.raises(UpstreamError):
                    client.generate("qwen-max", HISTORY, "sk-secret")

            errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
            assert len(errors) == 1
            assert errors[0].getMessage() == "Failed qwen_generate"
            assert errors[0].error.startswith(expected)
            assert "sk-secret" not in caplog.text

    def test_failure_classes_are_distinct(self):
        classes = {ProviderRejectedError, UpstreamUnreachableError, UpstreamLocalError}
        assert all(issubclass(c, UpstreamError) for c in classes)
        assert not any(issubclass(a, b) for a in classes for b in classes if a is not b)


class TestExtractReplyText:
    def test_reads_nested_path(self):
        payload = {"output": {"choices": [{"message": {"content": "hi"}}]}}
        assert extract_reply_text(payload) == "hi"

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            {},
            {"output": {"choices": []}},
            {"output": {"choices": [{"message": {}}]}},
            {"output": {"choices": [{"message": {"content": None}}]}},
        ],
    )
    def test_missing_or_wrong_type_is_local_error(self, payload):
        with pytest.raises(UpstreamLocalError):
            extract_reply_text(payload)
