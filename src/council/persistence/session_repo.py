"""Session repository.

The repository is the only place sessions live at runtime. Callers follow a
get / mutate / put unit of work: get returns an independent copy, so a
failed operation never leaks partial state into the table.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from council.debate.errors import SessionNotFoundError
from council.models.session import Session

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionRepository(Protocol):
    """Storage interface for sessions, keyed by session id."""

    def get(self, session_id: str) -> Session:
        """Return a copy of the session.

        Raises:
            SessionNotFoundError: If the id is unknown.
        """
        ...

    def put(self, session: Session) -> None:
        """Insert or replace a session."""
        ...

    def delete(self, session_id: str) -> bool:
        """Remove a session. Returns False if it did not exist."""
        ...

    def list_ids(self) -> list[str]:
        """Session ids in insertion order."""
        ...

    def snapshot(self) -> list[tuple[str, Session]]:
        """Consistent copy of the whole table as ordered (id, session) pairs."""
        ...

    def replace_all(self, items: Iterable[tuple[str, Session]]) -> None:
        """Replace the whole table, e.g. when restoring from a snapshot."""
        ...


class InMemorySessionRepository:
    """Thread-safe in-memory session table.

    Sessions are copied on the way in and on the way out; the stored objects
    are never handed to callers.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.RLock()

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            return session.model_copy(deep=True)

    def put(self, session: Session) -> None:
        stored = session.model_copy(deep=True)
        with self._lock:
            self._sessions[session.session_id] = stored

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def snapshot(self) -> list[tuple[str, Session]]:
        with self._lock:
            return [(sid, s.model_copy(deep=True)) for sid, s in self._sessions.items()]

    def replace_all(self, items: Iterable[tuple[str, Session]]) -> None:
        restored = {sid: session.model_copy(deep=True) for sid, session in items}
        with self._lock:
            self._sessions = restored
        logger.debug("Session table replaced with %d sessions", len(restored))

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions
