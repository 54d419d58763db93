"""In-memory store for conversation sessions.

Sessions live for the lifetime of the process only. Each operation is one
critical section under a single lock; there are no cross-call transactions,
so a session deleted between a lookup and a later append turns that append
into a logged no-op.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone

from models.session import Session, SessionMetadata

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionStore:
    """Keyed store owning every Session record.

    Callers always receive deep copies; the only way to change a stored
    session is :meth:`append_and_touch`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    def create(self, working_directory: str, repo_context: str | None = None) -> Session:
        now = utc_now_iso()
        session = Session(
            id=str(uuid.uuid4()),
            createdAt=now,
            updatedAt=now,
            repoContext=repo_context,
            workingDirectory=str(working_directory),
            messages=[],
            metadata=SessionMetadata(totalPrompts=0),
        )
        with self._lock:
            self._sessions[session.id] = session
            snapshot = session.model_copy(deep=True)
        logger.info("Created new session: %s", session.id)
        return snapshot

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session is not None else None

    def append_and_touch(self, session_id: str, new_messages: list[dict], prompt: str) -> bool:
        """
        Record a completed prompt against a session.

        Returns:
            bool: False (after logging) if the session no longer exists.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.warning("Session %s vanished before its messages could be recorded", session_id)
                return False
            session.messages.extend(new_messages)
            session.updatedAt = utc_now_iso()
            session.metadata.totalPrompts += 1
            session.metadata.lastPrompt = prompt
        return True

    def delete(self, session_id: str) -> bool:
        with self._lock:
            deleted = self._sessions.pop(session_id, None) is not None
        if deleted:
            logger.info("Deleted session: %s", session_id)
        return deleted

    def list_all(self) -> list[Session]:
        with self._lock:
            return [session.model_copy(deep=True) for session in self._sessions.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)
