"""
Error handling framework for the Qwen MCP gateway.

This module provides the gateway's exception hierarchy and the conversion of
any failure into the JSON-RPC error envelope returned to MCP callers.

Key features:
- Tagged exception classes per failure kind (validation, not-found, upstream)
- Machine-readable internal error codes kept on every exception
- Flattening of every failure into the single JSON-RPC internal-error code
- Request ID generation for log correlation

Error Categories:
- GatewayError: Base class for all gateway errors
- ValidationError: Missing or invalid input (prompt, API key, parameters)
- UnsupportedMethodError / UnsupportedToolError: Unknown method or tool name
- InvalidExpressionError: Rejected or unevaluable calculator expression
- SessionNotFoundError: Unknown session ID on delete
- UpstreamError: Qwen Cloud failures, split into rejected / unreachable / local

Example usage:
    from qwen_mcp_gateway.core.exceptions import SessionNotFoundError, format_jsonrpc_error

    try:
        store.delete(session_id)
    except SessionNotFoundError as e:
        return {"jsonrpc": "2.0", "id": request_id, "error": format_jsonrpc_error(e)}
"""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

# JSON-RPC 2.0 reserved error codes used on the wire
JSONRPC_VERSION = "2.0"
JSONRPC_PARSE_ERROR = -32700
JSONRPC_INTERNAL_ERROR = -32603
JSONRPC_INTERNAL_ERROR_MESSAGE = "Internal Error"
JSONRPC_PARSE_ERROR_MESSAGE = "Parse error"


class ErrorCategory(Enum):
    """
    Error categories for grouping related errors.

    The wire format flattens every category into one code; the category is
    kept for logging and for callers inside the process.
    """
    VALIDATION = "validation"  # Missing/invalid input, unknown method or tool
    NOT_FOUND = "not_found"    # Unknown session
    UPSTREAM = "upstream"      # Qwen Cloud failures
    INTERNAL = "internal"      # Anything unexpected


class ErrorCodes:
    """Internal error codes for all components."""

    # Validation Error Codes
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # MCP Protocol Error Codes
    MCP_METHOD_NOT_FOUND = "MCP_METHOD_NOT_FOUND"
    MCP_TOOL_NOT_FOUND = "MCP_TOOL_NOT_FOUND"
    MCP_INVALID_PARAMETERS = "MCP_INVALID_PARAMETERS"

    # Session Error Codes
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"

    # Upstream Error Codes
    UPSTREAM_REJECTED = "UPSTREAM_REJECTED"
    UPSTREAM_UNREACHABLE = "UPSTREAM_UNREACHABLE"
    UPSTREAM_LOCAL_ERROR = "UPSTREAM_LOCAL_ERROR"

    # System Error Codes
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


def generate_request_id(prefix: str = "req") -> str:
    """
    Generate unique request ID for log correlation.

    Args:
        prefix: Prefix for request ID (default: "req")

    Returns:
        Unique request ID string with format: prefix-uuid4

    Example:
        >>> generate_request_id()
        'req-12345678-1234-5678-9abc-123456789abc'
    """
    return f"{prefix}-{uuid.uuid4()}"


class GatewayError(Exception):
    """
    Base exception class for gateway errors.

    All custom exceptions inherit from this class so the dispatcher can tell
    expected failures apart from bugs while still flattening both into the
    same JSON-RPC envelope.

    Attributes:
        message: Error message, sent to callers as the envelope's ``data``
        error_code: Machine-readable internal error code
        category: Error category for grouping and logging
        details: Additional structured error context (optional)
        timestamp: When the error was raised (UTC)
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCodes.INTERNAL_SERVER_ERROR,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.category = category
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation used in log records."""
        result: Dict[str, Any] = {
            "error_code": self.error_code,
            "category": self.category.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }
        if self.details:
            try:
                json.dumps(self.details)
                result["details"] = self.details
            except (TypeError, ValueError, RecursionError):
                result["details"] = {"error": "Details contain non-serializable data"}
        return result


class ValidationError(GatewayError):
    """
    Request validation error.

    Represents missing or invalid input such as an absent prompt or API key.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        error_code: str = ErrorCodes.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            category=ErrorCategory.VALIDATION,
            details=details,
        )
        self.field = field
        if field is not None:
            self.details.setdefault("field", field)


class ConfigurationError(ValidationError):
    """Configuration file or environment could not be turned into a valid Config."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCodes.CONFIGURATION_ERROR,
            details=details,
        )


class UnsupportedMethodError(ValidationError):
    """The MCP request named a method this gateway does not implement."""

    def __init__(self, method: Any):
        super().__init__(
            message=f"Unsupported method: {method}",
            field="method",
            error_code=ErrorCodes.MCP_METHOD_NOT_FOUND,
        )
        self.method = method


class UnsupportedToolError(ValidationError):
    """``tool/execute`` named a tool that is not built in."""

    def __init__(self, tool_name: Any):
        super().__init__(
            message=f"Unsupported tool: {tool_name}",
            field="tool",
            error_code=ErrorCodes.MCP_TOOL_NOT_FOUND,
        )
        self.tool_name = tool_name


class InvalidExpressionError(ValidationError):
    """Calculator input was rejected or could not be evaluated."""

    def __init__(self, message: str, expression: Any = None):
        super().__init__(
            message=message,
            field="expression",
            error_code=ErrorCodes.MCP_INVALID_PARAMETERS,
        )
        self.expression = expression


class SessionNotFoundError(GatewayError):
    """No session is stored under the given ID."""

    def __init__(self, session_id: Any):
        super().__init__(
            message=f"Session not found: {session_id}",
            error_code=ErrorCodes.SESSION_NOT_FOUND,
            category=ErrorCategory.NOT_FOUND,
            details={"session_id": session_id},
        )
        self.session_id = session_id


class UpstreamError(GatewayError):
    """
    Qwen Cloud call failure.

    Never raised directly; one of the three subclasses below tells callers
    whether the provider said no, could not be reached, or the request never
    left this process.
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            category=ErrorCategory.UPSTREAM,
            details=details,
        )
        self.cause = cause


class ProviderRejectedError(UpstreamError):
    """The provider answered with a non-2xx HTTP response."""

    def __init__(self, status_code: int, body: Any):
        super().__init__(
            message=f"Qwen Cloud Error: {status_code} - {_render_body(body)}",
            error_code=ErrorCodes.UPSTREAM_REJECTED,
            details={"status_code": status_code},
        )
        self.status_code = status_code
        self.body = body


class UpstreamUnreachableError(UpstreamError):
    """The request was sent but no response came back."""

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__(
            message="Could not connect to Qwen Cloud",
            error_code=ErrorCodes.UPSTREAM_UNREACHABLE,
            details={"exception": str(cause)} if cause is not None else None,
            cause=cause,
        )


class UpstreamLocalError(UpstreamError):
    """Building or sending the request failed, or the reply could not be read."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(
            message=f"General error: {message}",
            error_code=ErrorCodes.UPSTREAM_LOCAL_ERROR,
            cause=cause,
        )


def _render_body(body: Any) -> str:
    """Render a provider error body the way it arrived (JSON when possible)."""
    if isinstance(body, str):
        return json.dumps(body)
    try:
        return json.dumps(body, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(body)


def format_jsonrpc_error(error: BaseException) -> Dict[str, Any]:
    """
    Flatten any exception into the JSON-RPC ``error`` object.

    Code and message are constant; ``data`` carries the cause.

    Args:
        error: Exception to format

    Returns:
        Dictionary with ``code``, ``message`` and ``data`` keys
    """
    if isinstance(error, GatewayError):
        data = error.message
    else:
        data = str(error) or type(error).__name__

    # Truncate extremely long messages
    if len(data) > 5000:
        data = data[:4997] + "..."

    return {
        "code": JSONRPC_INTERNAL_ERROR,
        "message": JSONRPC_INTERNAL_ERROR_MESSAGE,
        "data": data,
    }


def error_envelope(request_id: Any, error: BaseException) -> Dict[str, Any]:
    """Build the full JSON-RPC error response for a request."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": format_jsonrpc_error(error),
    }


def parse_error_envelope() -> Dict[str, Any]:
    """JSON-RPC response for a body that is not valid JSON."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": None,
        "error": {
            "code": JSONRPC_PARSE_ERROR,
            "message": JSONRPC_PARSE_ERROR_MESSAGE,
        },
    }
