"""Qwen MCP gateway: JSON-RPC sessions, generation and tools over HTTP."""

__version__ = "0.1.0"
