"""Locally executed MCP tools."""

from .calculator import evaluate
from .executor import ToolExecutor

__all__ = [
    "ToolExecutor",
    "evaluate"
]
