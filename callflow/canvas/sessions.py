"""Registry of open editor sessions."""

import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from ..config import CanvasConfig, get_settings
from ..exceptions import NotFoundError
from .editor import EditorSession

logger = structlog.get_logger()


class EditorSessionRegistry:
    """
    Owns every open EditorSession, keyed by session id.

    Each session belongs to the user who opened it; another user asking for
    it gets a not-found, same as for a closed session. Sessions idle for
    longer than ``session_idle_ttl_s`` are dropped, and opening a session
    past ``max_sessions_per_user`` evicts that user's least recently used one.
    """

    def __init__(
        self,
        canvas: Optional[CanvasConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.canvas = canvas or get_settings().canvas
        self._clock = clock
        self._sessions: Dict[str, EditorSession] = {}
        self._owners: Dict[str, str] = {}
        self._last_used: Dict[str, float] = {}

    def open(self, user_id: str) -> Tuple[str, EditorSession]:
        self.expire_idle()

        owned = self._sessions_of(user_id)
        while len(owned) >= self.canvas.max_sessions_per_user:
            oldest = min(owned, key=lambda sid: self._last_used[sid])
            self._drop(oldest)
            owned.remove(oldest)
            logger.info("Editor session evicted", session_id=oldest, user_id=user_id)

        session_id = str(uuid.uuid4())
        session = EditorSession(self.canvas)
        self._sessions[session_id] = session
        self._owners[session_id] = user_id
        self._last_used[session_id] = self._clock()
        logger.info("Editor session opened", session_id=session_id, user_id=user_id)
        return session_id, session

    def get(self, session_id: str, user_id: str) -> EditorSession:
        self.expire_idle()
        session = self._sessions.get(session_id)
        if session is None or self._owners.get(session_id) != user_id:
            raise NotFoundError("Editor session", session_id)
        self._last_used[session_id] = self._clock()
        return session

    def close(self, session_id: str, user_id: str) -> None:
        self.get(session_id, user_id)
        self._drop(session_id)
        logger.info("Editor session closed", session_id=session_id)

    def expire_idle(self) -> int:
        """Drop sessions idle past the TTL. Returns how many were dropped."""
        cutoff = self._clock() - self.canvas.session_idle_ttl_s
        expired = [sid for sid, used in self._last_used.items() if used < cutoff]
        for session_id in expired:
            self._drop(session_id)
        if expired:
            logger.info("Editor sessions expired", count=len(expired))
        return len(expired)

    def _sessions_of(self, user_id: str) -> List[str]:
        return [sid for sid, owner in self._owners.items() if owner == user_id]

    def _drop(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._owners.pop(session_id, None)
        self._last_used.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)
