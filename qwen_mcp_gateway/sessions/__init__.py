"""Conversation session state."""

from .store import Session, SessionStore, Turn

__all__ = [
    "Session",
    "SessionStore",
    "Turn"
]
