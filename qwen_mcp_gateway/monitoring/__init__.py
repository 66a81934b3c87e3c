"""Monitoring and health check functionality."""

from .health import HealthChecker

__all__ = [
    "HealthChecker"
]
