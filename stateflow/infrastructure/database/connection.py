"""
Database Connection Manager.

This module handles the low-level details of connecting to PostgreSQL.
It exposes the SQLModel engine which will be used by the Repositories.
"""

from functools import lru_cache

from sqlalchemy.engine import Engine
from sqlmodel import create_engine, SQLModel

from ...config import settings


@lru_cache()
def get_engine() -> Engine:
    """Creates the engine on first use so the in-memory backend needs no database."""
    if not settings.DATABASE_URL:
        raise RuntimeError("DATABASE_URL must be set to use the postgres session backend.")
    # echo=False in production to avoid leaking sensitive data in logs
    return create_engine(settings.DATABASE_URL, echo=False)


def init_db():
    """
    Idempotent initialization.
    Creates tables if they do not exist.
    """
    from . import tables  # noqa: F401  (registers table metadata)

    SQLModel.metadata.create_all(get_engine())
