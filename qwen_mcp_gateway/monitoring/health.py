"""
Health check module for the Qwen MCP gateway.

Backs the read-only ``GET /health`` endpoint. The check consumes no session
state and never calls Qwen Cloud.

Example usage:
    from qwen_mcp_gateway.monitoring.health import HealthChecker

    checker = HealthChecker(config)
    checker.get_health_status()
"""

import time
from typing import Any, Dict

# Health status constants
HEALTH_STATUS_OK = "ok"


class HealthChecker:
    """
    Liveness reporting for the gateway process.

    Args:
        config: Configuration object with an ``mcp`` section (name, version)
    """

    def __init__(self, config):
        self.config = config
        self.start_time = time.time()

    def get_health_status(self) -> Dict[str, Any]:
        """
        Get health status information.

        Returns:
            {
                "status": "ok",
                "timestamp": 1757757600000,
                "uptime_seconds": 12.34,
                "version": "0.1.0",
                "service_name": "qwen-mcp-gateway"
            }

            ``timestamp`` is epoch milliseconds.
        """
        current_time = time.time()
        return {
            "status": HEALTH_STATUS_OK,
            "timestamp": int(current_time * 1000),
            "uptime_seconds": round(current_time - self.start_time, 2),
            "version": self.config.mcp.version,
            "service_name": self.config.mcp.name,
        }
