"""
Session Store

Keeps each session's query history in the cache backend under
`session:<id>`, refreshed to a fixed expiry on every save.
"""

import json
import logging
import uuid
from typing import List, Optional

from ..models import SessionHistoryEntry
from ..storage.cache import CacheUnavailable

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"
DEFAULT_SESSION_TTL = 24 * 60 * 60


class SessionStore:
    """
    Manages per-session history lists.

    Features:
    - Session creation with random ids
    - History load/save as JSON in the cache backend
    - Session clearing
    """

    def __init__(self, backend, ttl_seconds: int = DEFAULT_SESSION_TTL, prefix: str = SESSION_PREFIX):
        """
        Args:
            backend: Cache backend with get / set_with_expiry / delete
            ttl_seconds: Session expiry
            prefix: Key namespace
        """
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    def create_session(self) -> str:
        """
        Create a new session id.

        Returns:
            Unique session ID
        """
        session_id = str(uuid.uuid4())
        logger.info(f"Created new session: {session_id}")
        return session_id

    def get_history(self, session_id: Optional[str]) -> List[SessionHistoryEntry]:
        """
        Load a session's history.

        Returns:
            History entries oldest first; empty if unknown or unreadable
        """
        if not session_id:
            return []

        try:
            raw = self.backend.get(self._key(session_id))
        except CacheUnavailable as e:
            logger.warning(f"Session store unavailable, returning empty history: {e}")
            return []

        if raw is None:
            return []

        try:
            return [SessionHistoryEntry.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error decoding session {session_id}: {e}")
            return []

    def save_history(self, session_id: str, history: List[SessionHistoryEntry]) -> bool:
        """
        Persist a session's history.

        Returns:
            True if successful, False otherwise
        """
        try:
            self.backend.set_with_expiry(
                self._key(session_id),
                self.ttl_seconds,
                json.dumps([entry.to_dict() for entry in history])
            )
        except CacheUnavailable as e:
            logger.error(f"Error saving session {session_id}: {e}")
            return False

        logger.debug(f"Saved {len(history)} history entries for session {session_id}")
        return True

    def clear_session(self, session_id: Optional[str]) -> None:
        """
        Delete all history for a session.

        Raises:
            CacheUnavailable: If the backend cannot be reached
        """
        if not session_id:
            return
        self.backend.delete(self._key(session_id))
        logger.info(f"Cleared session {session_id}")
