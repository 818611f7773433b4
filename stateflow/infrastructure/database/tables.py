"""
Database Table Definitions.

This module defines the SQL schema using SQLModel.
We use the 'DBModel' suffix to distinguish these persistence models
from the Pydantic state models (SessionState).
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Column, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionDBModel(SQLModel, table=True):
    """
    Persistence model for Sessions.
    Maps 1-to-1 with the 'sessions' table in Postgres.
    """

    __tablename__ = "sessions"

    # Ids may be supplied by callers, so they are stored as opaque text.
    session_id: str = Field(primary_key=True, index=True)

    # Store the entire SessionState (messages, variables, ttl) as JSONB.
    state: Dict[str, Any] = Field(sa_column=Column(JSONB, nullable=False))

    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    # Denormalised from state so expired rows can be purged with one query.
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
