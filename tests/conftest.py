"""Shared pytest fixtures for gateway tests."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

from qwen_mcp_gateway.mcp.handlers import McpDispatcher
from qwen_mcp_gateway.sessions.store import SessionStore
from qwen_mcp_gateway.tools.executor import ToolExecutor

CONFIG_ENV_VARS = (
    "PORT",
    "HOST",
    "DEFAULT_MODEL",
    "QWEN_API_KEY",
    "QWEN_ENDPOINT",
    "QWEN_TIMEOUT_SECONDS",
    "LOG_LEVEL",
)


class FakeUpstream:
    """Stand-in for ``QwenClient`` that records every call.

    Replies are served in order; an exception instance in ``replies`` is raised
    instead of returned.
    """

    def __init__(self, replies: Optional[List[Any]] = None) -> None:
        self.replies: List[Any] = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    def generate(self, model: str, messages: Sequence[Mapping[str, str]], api_key: str) -> str:
        # Copy messages: the caller's history keeps growing after the call
        self.calls.append({"model": model, "messages": [dict(m) for m in messages], "api_key": api_key})
        reply = self.replies.pop(0) if self.replies else f"reply {len(self.calls)}"
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of config-dependent tests."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def dispatcher(store: SessionStore, upstream: FakeUpstream) -> McpDispatcher:
    return McpDispatcher(
        store=store,
        client=upstream,
        tools=ToolExecutor(),
        default_model="qwen-max",
        default_api_key="env-key",
    )


def mcp_request(method: str, params: Any = None, request_id: Any = 1) -> Dict[str, Any]:
    message: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message
