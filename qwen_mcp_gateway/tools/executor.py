"""Built-in tool registry and execution.

Public API:
- TOOL_CALCULATE, TOOL_GET_TIME: names of the built-in tools
- ToolExecutor.execute(tool_name, parameters): validates input and runs the tool

Tools are pure functions of their parameters; none keeps state between calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from ..core.exceptions import UnsupportedToolError
from ..core.logging_config import get_logger
from .calculator import evaluate

__all__ = ["ToolExecutor", "TOOL_CALCULATE", "TOOL_GET_TIME"]

# -- Constants -----------------------------------------------------------------

TOOL_CALCULATE = "calculate"
TOOL_GET_TIME = "get-time"

_LOGGER = get_logger("tools.executor")


# -- Tool implementations ------------------------------------------------------


def calculate(parameters: Mapping[str, Any]) -> Dict[str, Any]:
    return {"result": evaluate(parameters.get("expression"))}


def get_time(parameters: Mapping[str, Any]) -> Dict[str, Any]:  # noqa: ARG001 - no inputs
    now = datetime.now(timezone.utc)
    return {
        "time": now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        # Integer arithmetic so both fields name the same millisecond
        "timestamp": int(now.timestamp()) * 1000 + now.microsecond // 1000,
    }


# -- Tool Executor -------------------------------------------------------------

Handler = Callable[[Mapping[str, Any]], Dict[str, Any]]


def _default_handlers() -> Dict[str, Handler]:
    return {
        TOOL_CALCULATE: calculate,
        TOOL_GET_TIME: get_time,
    }


@dataclass
class ToolExecutor:
    """Route ``tool/execute`` calls to the built-in tools."""

    handlers: Dict[str, Handler] = field(default_factory=_default_handlers)

    def execute(self, tool_name: Any, parameters: Optional[Any] = None) -> Dict[str, Any]:
        """Run a tool.

        Args:
            tool_name: Name of the tool to invoke
            parameters: Tool parameters; anything but a mapping counts as empty

        Raises:
            UnsupportedToolError: If ``tool_name`` is not a built-in tool.
            InvalidExpressionError: From ``calculate`` on rejected input.
        """
        handler = self.handlers.get(tool_name) if isinstance(tool_name, str) else None
        if handler is None:
            raise UnsupportedToolError(tool_name)

        params: Mapping[str, Any] = parameters if isinstance(parameters, Mapping) else {}
        _LOGGER.debug("Executing tool", extra={"tool": tool_name})
        return handler(params)
