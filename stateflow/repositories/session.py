import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import delete
from sqlmodel import Session, select

# State & Infra Imports
from ..state.models import DEFAULT_TTL_SECONDS, SessionState, utcnow
from ..infrastructure.database.tables import SessionDBModel
from ..infrastructure.database.connection import get_engine


class SessionRepository(ABC):
    """
    Defines how the application stores sessions.
    This allows us change how data is accessed (Memory -> SQL -> Cache) later
    without changing the SessionManager code.

    Repositories do not interpret TTLs on read; expiry is decided by the
    SessionManager.
    """

    @abstractmethod
    def create(
        self, session_id: Optional[str] = None, ttl_seconds: int = DEFAULT_TTL_SECONDS
    ) -> SessionState:
        """Creates a new empty session, minting an id when none is given."""
        pass

    @abstractmethod
    def get(self, session_id: str) -> Optional[SessionState]:
        """Retrieves a session by ID."""
        pass

    @abstractmethod
    def save(self, session: SessionState):
        """Persists the session state."""
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Deletes a session. Returns True if found and deleted."""
        pass

    @abstractmethod
    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Deletes every expired session. Returns the number removed."""
        pass

    def close(self):
        """Releases backend resources."""
        pass


def _new_session(session_id: Optional[str], ttl_seconds: int) -> SessionState:
    return SessionState(session_id=session_id or str(uuid.uuid4()), ttl_seconds=ttl_seconds)


class InMemorySessionRepository(SessionRepository):
    """
    Uses in-memory dictionary for session storage. The default backend.
    Sessions are copied on the way in and out so callers never share
    instances with the store.
    """

    def __init__(self):
        self._store: Dict[str, SessionState] = {}

    def create(
        self, session_id: Optional[str] = None, ttl_seconds: int = DEFAULT_TTL_SECONDS
    ) -> SessionState:
        session = _new_session(session_id, ttl_seconds)
        self._store[session.session_id] = session.model_copy(deep=True)
        return session

    def get(self, session_id: str) -> Optional[SessionState]:
        session = self._store.get(session_id)
        return session.model_copy(deep=True) if session else None

    def save(self, session: SessionState):
        self._store[session.session_id] = session.model_copy(deep=True)

    def delete(self, session_id: str) -> bool:
        if session_id in self._store:
            del self._store[session_id]
            return True
        return False

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        expired = [sid for sid, s in self._store.items() if s.is_expired(now)]
        for sid in expired:
            del self._store[sid]
        return len(expired)

    def close(self):
        self._store.clear()


class PostgresSessionRepository(SessionRepository):
    """
    PostgreSQL + JSONB storage for session state.
    """

    def create(
        self, session_id: Optional[str] = None, ttl_seconds: int = DEFAULT_TTL_SECONDS
    ) -> SessionState:
        domain_session = _new_session(session_id, ttl_seconds)

        with Session(get_engine()) as db:
            # A caller-supplied id may belong to an expired row; replace it.
            existing = db.get(SessionDBModel, domain_session.session_id)
            if existing:
                db.delete(existing)
                db.flush()
            db.add(self._to_row(domain_session))
            db.commit()

        return domain_session

    def get(self, session_id: str) -> Optional[SessionState]:
        with Session(get_engine()) as db:
            statement = select(SessionDBModel).where(
                SessionDBModel.session_id == session_id
            )
            result = db.exec(statement).first()

            if not result:
                return None

            # Deserialize JSONB back into the Pydantic state model
            return SessionState(**result.state)

    def save(self, session: SessionState):
        with Session(get_engine()) as db:
            result = db.get(SessionDBModel, session.session_id)

            if result:
                result.state = session.model_dump(mode="json")
                result.updated_at = utcnow()
                result.expires_at = session.expires_at
                db.add(result)
            else:
                db.add(self._to_row(session))
            db.commit()

    def delete(self, session_id: str) -> bool:
        with Session(get_engine()) as db:
            result = db.get(SessionDBModel, session_id)

            if result:
                db.delete(result)
                db.commit()
                return True
            return False

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        with Session(get_engine()) as db:
            statement = delete(SessionDBModel).where(
                SessionDBModel.expires_at < (now or utcnow())
            )
            result = db.execute(statement)
            db.commit()
            return result.rowcount or 0

    def close(self):
        get_engine().dispose()

    def _to_row(self, session: SessionState) -> SessionDBModel:
        return SessionDBModel(
            session_id=session.session_id,
            state=session.model_dump(mode="json"),
            created_at=session.created_at,
            updated_at=utcnow(),
            expires_at=session.expires_at,
        )
