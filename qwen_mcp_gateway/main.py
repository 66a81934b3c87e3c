#!/usr/bin/env python3
"""
Qwen MCP Gateway - HTTP Entry Point

This module provides the main entry point for the gateway: it loads
configuration, sets up logging, wires the session store, Qwen Cloud client,
tools and dispatcher together, and serves the MCP endpoint over HTTP until
interrupted.
"""

import argparse
import sys
from dataclasses import dataclass
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from qwen_mcp_gateway import __version__
from qwen_mcp_gateway.core.config import Config, ConfigManager
from qwen_mcp_gateway.core.exceptions import ConfigurationError
from qwen_mcp_gateway.core.logging_config import LogLevel, configure_from_dict, get_logger
from qwen_mcp_gateway.llm.client import QwenClient
from qwen_mcp_gateway.mcp.handlers import McpDispatcher
from qwen_mcp_gateway.mcp.server import GatewayServer
from qwen_mcp_gateway.monitoring.health import HealthChecker
from qwen_mcp_gateway.sessions.store import SessionStore
from qwen_mcp_gateway.tools.executor import ToolExecutor

logger = get_logger("qwen_mcp_gateway.server")


@dataclass
class Application:
    """Everything one gateway process holds for its lifetime."""

    config: Config
    store: SessionStore
    client: QwenClient
    dispatcher: McpDispatcher
    health: HealthChecker


def build_application(config: Config) -> Application:
    """Wire the gateway components from configuration."""
    store = SessionStore()
    client = QwenClient(endpoint=config.qwen.endpoint, timeout=config.qwen.timeout_seconds)
    dispatcher = McpDispatcher(
        store=store,
        client=client,
        tools=ToolExecutor(),
        default_model=config.qwen.default_model,
        default_api_key=config.qwen.api_key,
    )
    return Application(
        config=config,
        store=store,
        client=client,
        dispatcher=dispatcher,
        health=HealthChecker(config),
    )


def _configure_logging(config: Config, verbose: bool) -> None:
    settings = config.logging.model_dump()
    if verbose:
        settings["level"] = LogLevel.DEBUG.value
    configure_from_dict(settings)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the gateway.

    Args:
        argv: Command line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = argparse.ArgumentParser(
        prog='qwen-mcp-gateway',
        description='Qwen MCP Gateway - JSON-RPC sessions, generation and tools over HTTP',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Optional path to a YAML configuration file'
    )

    parser.add_argument(
        '--port',
        type=int,
        default=None,
        help='Listen port (overrides config and PORT)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1

    try:
        config = ConfigManager().load_config(args.config)
        if args.port is not None:
            config.server.port = args.port
    except (FileNotFoundError, ConfigurationError, PydanticValidationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    _configure_logging(config, args.verbose)
    app = build_application(config)

    try:
        server = GatewayServer(config.server.host, config.server.port, app.dispatcher, app.health)
    except (OSError, OverflowError) as e:
        logger.error("Could not bind listen address", extra={"port": config.server.port, "error": str(e)})
        return 1

    host, port = server.address
    logger.info(f"MCP gateway listening on {host}:{port}", extra={"endpoints": ["/", "/health"]})
    if not config.qwen.api_key:
        logger.warning(
            "No QWEN_API_KEY configured; every model/generate request must supply apiKey"
        )

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.stop()
        app.client.close()

    return 0


if __name__ == '__main__':
    sys.exit(main())
