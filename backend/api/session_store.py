"""
In-memory registry of live conversation sessions.

Sessions hold unsaved editing state and the busy flag of an in-flight round,
so they live in process memory; their persisted conversations live in the
database.
"""

from typing import Dict, List, Optional
import threading

from services.session import ConversationSession


class SessionStore:
    """Thread-safe in-memory store of ConversationSession objects."""

    def __init__(self) -> None:
        self._store: Dict[str, ConversationSession] = {}
        self._lock = threading.Lock()

    def add(self, session: ConversationSession) -> ConversationSession:
        with self._lock:
            self._store[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[ConversationSession]:
        with self._lock:
            return self._store.get(session_id)

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._store)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._store.pop(session_id, None)


# Singleton instance shared across the application
session_store = SessionStore()
