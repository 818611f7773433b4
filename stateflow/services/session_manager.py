"""
Session Manager - Session Lifecycle Layer

Owns every SessionState record. Resolves session ids to live sessions
(creating or rejecting according to the request flags), applies TTL expiry,
and serialises turns per session id so concurrent requests against the same
session never lose updates.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, Optional

from ..exceptions import SessionNotFound
from ..repositories.session import SessionRepository
from ..state.models import DEFAULT_TTL_SECONDS, SessionState, utcnow

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(
        self,
        repository: SessionRepository,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        history_window: int = 0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.default_ttl = default_ttl
        self.history_window = history_window
        self.clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    # ==========================================================================
    # Resolution
    # ==========================================================================

    def resolve(
        self,
        session_id: Optional[str] = None,
        create_session: bool = False,
        state_ttl: Optional[int] = None,
    ) -> SessionState:
        """
        Returns the live session for `session_id`.

        - Known and unexpired: returned with last_active_at refreshed.
        - Unknown or expired: SessionNotFound, unless create_session is set,
          in which case a fresh session reuses the requested id.
        - No id: a new session with a minted id.
        """
        now = self.clock()

        if session_id is None:
            return self._create(None, state_ttl, now)

        session = self._load_live(session_id, now)
        if session is None:
            if not create_session:
                raise SessionNotFound(session_id)
            return self._create(session_id, state_ttl, now)

        if state_ttl is not None:
            session.ttl_seconds = state_ttl
        session.touch(now)
        return session

    def get(self, session_id: str) -> SessionState:
        """Read-only lookup. Does not refresh activity."""
        session = self._load_live(session_id, self.clock())
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def create(self, session_id: Optional[str] = None, state_ttl: Optional[int] = None) -> SessionState:
        return self._create(session_id, state_ttl, self.clock())

    async def clear_state(self, session_id: str) -> SessionState:
        """Empties messages and variables; keeps the id and TTL configuration."""
        async with self.lock(session_id):
            session = self.get(session_id)
            session.clear()
            session.touch(self.clock())
            self.repository.save(session)
            logger.info(f"Cleared state for session {session_id}")
            return session

    async def delete(self, session_id: str) -> bool:
        async with self.lock(session_id):
            return self.repository.delete(session_id)

    def purge_expired(self) -> int:
        removed = self.repository.purge_expired(self.clock())
        if removed:
            logger.info(f"Purged {removed} expired sessions")
        return removed

    def save(self, session: SessionState):
        if self.history_window:
            session.truncate_history(self.history_window)
        self.repository.save(session)

    # ==========================================================================
    # Turn Scope
    # ==========================================================================

    @asynccontextmanager
    async def checkout(
        self,
        session_id: Optional[str] = None,
        create_session: bool = False,
        state_ttl: Optional[int] = None,
    ) -> AsyncIterator[SessionState]:
        """
        Borrows a session for one turn.

        The per-session lock is held for the whole block and the session is
        saved exactly once on exit, whether the block finished, raised, or
        was cancelled.
        """
        if session_id is None:
            session = self.resolve(None, create_session, state_ttl)
            session_id = session.session_id
            async with self.lock(session_id):
                try:
                    yield session
                finally:
                    self.save(session)
            return

        async with self.lock(session_id):
            session = self.resolve(session_id, create_session, state_ttl)
            try:
                yield session
            finally:
                self.save(session)

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        """Mutual exclusion keyed by session id. Idle locks are dropped."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._waiters[session_id] = self._waiters.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[session_id] -= 1
            if not self._waiters[session_id]:
                del self._waiters[session_id]
                self._locks.pop(session_id, None)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _load_live(self, session_id: str, now: datetime) -> Optional[SessionState]:
        session = self.repository.get(session_id)
        if session is None:
            return None
        if session.is_expired(now):
            logger.info(f"Session {session_id} expired; evicting")
            self.repository.delete(session_id)
            return None
        return session

    def _create(self, session_id: Optional[str], state_ttl: Optional[int], now: datetime) -> SessionState:
        session = self.repository.create(
            session_id=session_id, ttl_seconds=state_ttl or self.default_ttl
        )
        session.created_at = now
        session.touch(now)
        self.repository.save(session)
        logger.info(f"Created session {session.session_id}")
        return session
