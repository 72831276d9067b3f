"""Canonical session records, keyed by session id."""
from __future__ import annotations

from typing import Dict, Iterable, Optional

from relay.services.models import Session


class SessionStore:
    """
    Plain map of sessions. Not thread-safe on its own: the relay holds its lock
    around every call.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def put(self, session: Session) -> Session:
        self._sessions[session.session_id] = session
        return session

    def remove(self, session_id: str) -> Optional[Session]:
        return self._sessions.pop(session_id, None)

    def values(self) -> Iterable[Session]:
        return list(self._sessions.values())

    def stale_ids(self, now: float, timeout: float) -> list[str]:
        return [
            sid
            for sid, s in self._sessions.items()
            if (now - s.last_activity_at) > timeout
        ]

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
