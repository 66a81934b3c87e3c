"""MCP protocol handling and HTTP transport."""

from .handlers import McpDispatcher, McpMethod
from .server import GatewayServer, start_http_server

__all__ = [
    "McpDispatcher",
    "McpMethod",
    "GatewayServer",
    "start_http_server"
]
