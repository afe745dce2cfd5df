"""
In-memory registry of game sessions.
"""
import threading
import uuid
from typing import Callable, Dict, List, Optional

from fingame import GameConfig, GameSession, SessionStatus

from .logging_config import get_logger
from .monitoring import active_sessions

logger = get_logger("sessions")

DEFAULT_SESSION_ID = "default"


class SessionNotFoundError(LookupError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class SessionManager:
    """Holds every live session. The default session always exists."""

    def __init__(self, config_factory: Callable[[], GameConfig] = GameConfig.from_env):
        self.config_factory = config_factory
        self.sessions: Dict[str, GameSession] = {}
        # session_id -> number of history entries already broadcast
        self._log_cursors: Dict[str, int] = {}
        self._lock = threading.Lock()

    def create_session(self, session_id: Optional[str] = None, seed: Optional[int] = None) -> GameSession:
        """Create a new session."""
        with self._lock:
            session_id = session_id or str(uuid.uuid4())
            if session_id in self.sessions:
                raise ValueError(f"Session {session_id} already exists")
            session = GameSession(session_id=session_id, config=self.config_factory(), seed=seed)
            self.sessions[session_id] = session
            self._log_cursors[session_id] = 0
            active_sessions.set(len(self.sessions))
        logger.info("session_created", session_id=session_id)
        return session

    def get_session(self, session_id: str) -> GameSession:
        """Get a session by id; the default session is created on first use."""
        session = self.sessions.get(session_id)
        if session is None and session_id == DEFAULT_SESSION_ID:
            try:
                return self.create_session(DEFAULT_SESSION_ID)
            except ValueError:
                return self.sessions[DEFAULT_SESSION_ID]
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def delete_session(self, session_id: str) -> bool:
        """Delete a session. The default session is reset instead."""
        if session_id == DEFAULT_SESSION_ID:
            self.get_session(session_id).reset()
            with self._lock:
                self._log_cursors[session_id] = 0
            return True
        with self._lock:
            removed = self.sessions.pop(session_id, None)
            self._log_cursors.pop(session_id, None)
            active_sessions.set(len(self.sessions))
        if removed:
            logger.info("session_deleted", session_id=session_id)
        return removed is not None

    def list_sessions(self, status: Optional[SessionStatus] = None) -> List[GameSession]:
        return [s for s in self.sessions.values() if status is None or s.status == status]

    def new_log_entries(self, session: GameSession) -> List[dict]:
        """Log feed entries not broadcast yet for this session."""
        with self._lock:
            cursor = self._log_cursors.get(session.session_id, 0)
            if cursor > len(session.history):
                cursor = 0  # session was reset
            entries = session.log_feed(cursor)
            self._log_cursors[session.session_id] = cursor + len(entries)
        return entries


# Global session manager instance
session_manager = SessionManager()
