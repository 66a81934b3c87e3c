"""Core functionality package for the Qwen MCP gateway."""

from .config import ConfigManager, Config
from .exceptions import (
    GatewayError,
    ValidationError,
    ConfigurationError,
    UnsupportedMethodError,
    UnsupportedToolError,
    InvalidExpressionError,
    SessionNotFoundError,
    UpstreamError,
    ProviderRejectedError,
    UpstreamUnreachableError,
    UpstreamLocalError,
)
from .logging_config import (
    setup_logging,
    get_logger,
    LogLevel,
    PerformanceLogger
)

__all__ = [
    "ConfigManager",
    "Config",
    "GatewayError",
    "ValidationError",
    "ConfigurationError",
    "UnsupportedMethodError",
    "UnsupportedToolError",
    "InvalidExpressionError",
    "SessionNotFoundError",
    "UpstreamError",
    "ProviderRejectedError",
    "UpstreamUnreachableError",
    "UpstreamLocalError",
    "setup_logging",
    "get_logger",
    "LogLevel",
    "PerformanceLogger"
]
