"""MCP request dispatching.

Turns one decoded JSON-RPC request into exactly one JSON-RPC response. The
four supported methods are an ``McpMethod`` enum routed with an exhaustive
``match``; every failure, expected or not, is flattened into the error
envelope by ``McpDispatcher.dispatch`` and never raised to the transport.

Success envelope::

    {"jsonrpc": "2.0", "id": <id>, "result": {...}}

Error envelope::

    {"jsonrpc": "2.0", "id": <id>,
     "error": {"code": -32603, "message": "Internal Error", "data": "<cause>"}}
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence

from ..core.config import DEFAULT_MODEL
from ..core.exceptions import (
    GatewayError,
    JSONRPC_VERSION,
    UnsupportedMethodError,
    ValidationError,
    error_envelope,
)
from ..core.logging_config import get_logger
from ..sessions.store import Session, SessionStore
from ..tools.executor import ToolExecutor

__all__ = ["McpMethod", "McpDispatcher", "GenerateParams", "UpstreamClient"]

_LOGGER = get_logger("mcp.dispatcher")


class McpMethod(str, Enum):
    SESSION_CREATE = "session/create"
    SESSION_DELETE = "session/delete"
    MODEL_GENERATE = "model/generate"
    TOOL_EXECUTE = "tool/execute"

    @classmethod
    def parse(cls, value: Any) -> "McpMethod":
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedMethodError(value) from None


class UpstreamClient(Protocol):
    """What the generation handler needs from the upstream adapter."""

    def generate(self, model: str, messages: Sequence[Mapping[str, str]], api_key: str) -> str: ...


@dataclass(frozen=True)
class GenerateParams:
    prompt: str
    session_id: Optional[str]
    model: str
    api_key: str

    @classmethod
    def from_params(
        cls, params: Mapping[str, Any], default_model: str, default_api_key: Optional[str]
    ) -> "GenerateParams":
        """Validate ``model/generate`` params.

        Raises ``ValidationError`` for a missing prompt or when no API key is
        available from either the request or the process default.
        """
        prompt = params.get("prompt")
        if prompt is None or prompt == "":
            raise ValidationError("Prompt is required", field="prompt")
        if not isinstance(prompt, str):
            raise ValidationError("Prompt must be a string", field="prompt")

        api_key = params.get("apiKey") or default_api_key
        if not api_key:
            raise ValidationError(
                "API key is required (parameter or environment variable)", field="apiKey"
            )

        session_id = params.get("sessionId")
        return cls(
            prompt=prompt,
            session_id=session_id if isinstance(session_id, str) else None,
            model=params.get("model") or default_model,
            api_key=str(api_key),
        )


class McpDispatcher:
    """Route MCP methods to the session store, the upstream client and the tools.

    Parameters
    ----------
    store:
        Session store shared by every request of this process.
    client:
        Upstream adapter (``QwenClient`` in production).
    tools:
        Built-in tool executor.
    default_model:
        Model used when ``model/generate`` names none.
    default_api_key:
        Process-wide API key; may be empty.
    """

    def __init__(
        self,
        store: SessionStore,
        client: UpstreamClient,
        tools: Optional[ToolExecutor] = None,
        default_model: str = DEFAULT_MODEL,
        default_api_key: Optional[str] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.tools = tools or ToolExecutor()
        self.default_model = default_model
        self.default_api_key = default_api_key or None

    def dispatch(self, message: Any) -> Dict[str, Any]:
        """Process one MCP request and return its response envelope.

        Never raises.
        """
        request_id = message.get("id") if isinstance(message, Mapping) else None
        method_name = message.get("method") if isinstance(message, Mapping) else None
        raw_params = message.get("params") if isinstance(message, Mapping) else None
        # Ensure a concrete mapping for downstream code
        params: Mapping[str, Any] = raw_params if isinstance(raw_params, Mapping) else {}

        try:
            result = self._route(McpMethod.parse(method_name), params)
        except GatewayError as exc:
            _LOGGER.warning(
                "MCP request failed",
                extra={
                    "request_id": request_id,
                    "method": method_name,
                    "error_code": exc.error_code,
                    "category": exc.category.value,
                    "error": exc.message,
                },
            )
            return error_envelope(request_id, exc)
        except Exception as exc:  # Map unexpected errors the same way
            _LOGGER.exception(
                "Unexpected error processing MCP request",
                extra={"request_id": request_id, "method": method_name},
            )
            return error_envelope(request_id, exc)

        return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}

    def _route(self, method: McpMethod, params: Mapping[str, Any]) -> Dict[str, Any]:
        match method:
            case McpMethod.SESSION_CREATE:
                return self.session_create()
            case McpMethod.SESSION_DELETE:
                return self.session_delete(params.get("sessionId"))
            case McpMethod.MODEL_GENERATE:
                return self.model_generate(params)
            case McpMethod.TOOL_EXECUTE:
                return self.tool_execute(params.get("tool"), params.get("parameters"))
            case _:  # pragma: no cover - McpMethod.parse admits only the members above
                raise UnsupportedMethodError(method)

    # -- Handlers --------------------------------------------------------------

    def session_create(self) -> Dict[str, Any]:
        return {"sessionId": self.store.create()}

    def session_delete(self, session_id: Any) -> Dict[str, Any]:
        self.store.delete(session_id)
        return {"success": True}

    def model_generate(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """Run one generation turn.

        The user turn is appended before the upstream call and stays there if
        the call fails; upstream errors propagate unchanged.
        """
        request = GenerateParams.from_params(params, self.default_model, self.default_api_key)
        session = self._resolve_session(request.session_id)

        session.append("user", request.prompt)
        reply = self.client.generate(request.model, session.messages(), request.api_key)
        session.append("assistant", reply)

        return {
            "choices": [{"message": {"role": "assistant", "content": reply}}],
            "model": request.model,
            "session": session.id,
        }

    def tool_execute(self, tool_name: Any, parameters: Any) -> Dict[str, Any]:
        return self.tools.execute(tool_name, parameters)

    def _resolve_session(self, session_id: Optional[str]) -> Session:
        session = self.store.resolve(session_id)
        if session_id is not None and session.id != session_id:
            _LOGGER.info(
                "Unknown session requested; created a new one",
                extra={"requested_session_id": session_id, "session_id": session.id},
            )
        return session
