"""In-memory registry of chat sessions."""

from typing import Dict, List, Optional

from .models import ChatSession


class SessionStore:
    """Holds sessions by id, a name index, and the active-session pointer.

    The store keeps the three structures consistent for single operations;
    multi-step invariants (one active session, unique names) are enforced by
    ``ChatSessionManager``, which is the only intended writer. Callers must
    serialize mutations.
    """

    def __init__(self):
        self._sessions: Dict[str, ChatSession] = {}
        self._names: Dict[str, str] = {}
        self.active_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[ChatSession]:
        return self._sessions.get(session_id)

    def id_for_name(self, name: str) -> Optional[str]:
        return self._names.get(name)

    def has_name(self, name: str) -> bool:
        return name in self._names

    def add(self, session: ChatSession):
        self._sessions[session.id] = session
        self._names[session.name] = session.id

    def remove(self, session_id: str) -> Optional[ChatSession]:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        if self._names.get(session.name) == session_id:
            del self._names[session.name]
        if self.active_id == session_id:
            self.active_id = None
        return session

    def rename(self, session_id: str, new_name: str):
        session = self._sessions[session_id]
        if self._names.get(session.name) == session_id:
            del self._names[session.name]
        session.name = new_name
        self._names[new_name] = session_id

    def sessions(self) -> List[ChatSession]:
        """All sessions ordered by id."""
        return [self._sessions[k] for k in sorted(self._sessions)]

    def names(self) -> List[str]:
        return sorted(self._names)

    def clear(self):
        self._sessions.clear()
        self._names.clear()
        self.active_id = None
