"""Upstream LLM access."""

from .client import QwenClient

__all__ = [
    "QwenClient"
]
