"""One conversation context per session id."""

import logging
import threading
from collections.abc import Callable

from kaapi.memory.context import ConversationContextManager

logger = logging.getLogger(__name__)

ManagerFactory = Callable[[], ConversationContextManager]


class SessionRegistry:
    """Hands out an independent ConversationContextManager per session.

    Sessions never share history, so concurrent conversations cannot
    interleave each other's turns. This is the library entry point for
    multi-user front ends; the bundled CLI serves a single session.
    """

    def __init__(self, factory: ManagerFactory) -> None:
        self._factory = factory
        self._sessions: dict[str, ConversationContextManager] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> ConversationContextManager:
        """Return the manager for a session, creating it on first use."""
        with self._lock:
            manager = self._sessions.get(session_id)
            if manager is None:
                manager = self._factory()
                self._sessions[session_id] = manager
                logger.debug("Session created: %s", session_id)
            return manager

    def end(self, session_id: str) -> None:
        """Forget a session and its history."""
        with self._lock:
            if self._sessions.pop(session_id, None) is not None:
                logger.debug("Session ended: %s", session_id)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
