"""In-memory conversation session store.

Sessions live for the lifetime of the process and are only removed by an
explicit delete. One ``SessionStore`` is built at start-up and handed to the
dispatcher; tests construct their own.

The mapping itself is lock-guarded. Appends to one session's history are not:
two concurrent generations on the same session may interleave their turns.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from ..core.exceptions import SessionNotFoundError
from ..core.logging_config import get_logger

__all__ = ["Role", "Turn", "Session", "SessionStore", "generate_session_id"]

Role = Literal["user", "assistant"]

_LOGGER = get_logger("sessions.store")


@dataclass(frozen=True, slots=True)
class Turn:
    """One message in a session's history."""

    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class Session:
    id: str
    history: List[Turn] = field(default_factory=list)

    def append(self, role: Role, content: str) -> Turn:
        turn = Turn(role=role, content=content)
        self.history.append(turn)
        return turn

    def messages(self) -> List[Dict[str, str]]:
        """History in the upstream wire shape."""
        return [turn.to_dict() for turn in self.history]


def generate_session_id() -> str:
    return str(uuid.uuid4())


class SessionStore:
    """Process-lifetime mapping of session ID to ``Session``."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()

    def create(self) -> str:
        """Create an empty session and return its ID."""
        session_id = generate_session_id()
        with self._lock:
            self._sessions[session_id] = Session(id=session_id)
        _LOGGER.debug("Session created", extra={"session_id": session_id})
        return session_id

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not isinstance(session_id, str):
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def resolve(self, session_id: Optional[str]) -> Session:
        """Return the stored session, or a brand-new one under a fresh ID.

        A caller-supplied ID that is unknown is never adopted.
        """
        with self._lock:
            session = self.get(session_id)
            if session is None:
                session = self._sessions[self.create()]
        return session

    def delete(self, session_id: Optional[str]) -> bool:
        """Remove a session.

        Raises:
            SessionNotFoundError: If no session is stored under ``session_id``.
        """
        with self._lock:
            if not isinstance(session_id, str) or session_id not in self._sessions:
                raise SessionNotFoundError(session_id)
            del self._sessions[session_id]
        _LOGGER.debug("Session deleted", extra={"session_id": session_id})
        return True

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
