"""
Database session management with connection pooling.

Provides the shared FastAPI dependency for database sessions and the
DataStore dependency built on top of it.

Usage:
    from src.database.session import get_data_store

    @router.post("/items")
    async def create_item(store: DataStore = Depends(get_data_store)):
        ...
"""

import logging
import os
from typing import Generator

from fastapi import Depends, HTTPException, status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.repositories.data_store import DataStore, SqlAlchemyDataStore

logger = logging.getLogger(__name__)

# Module-level engine singleton
_engine = None
_SessionLocal = None


def _get_database_url() -> str:
    """
    Get and normalize the database URL from environment.

    Handles the postgres:// URL format by converting to postgresql://.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return database_url


def get_engine() -> Engine:
    """
    Get or create the database engine singleton.

    Pooling is left to SQLAlchemy's per-dialect default, with
    pool_pre_ping and a 30 minute recycle for server databases.
    """
    global _engine
    if _engine is None:
        database_url = _get_database_url()
        engine_kwargs = {"pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs["pool_recycle"] = 1800
        _engine = create_engine(database_url, **engine_kwargs)
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the session factory singleton."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine()
        )
    return _SessionLocal


def init_db() -> None:
    """Create all tables that do not exist yet."""
    from src.db_base import Base
    import src.models  # noqa: F401 - registers tables on Base

    Base.metadata.create_all(bind=get_engine())


def get_db_session() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Creates a new session for each request and ensures cleanup.
    Raises HTTP 503 if the database is not configured.
    """
    try:
        SessionLocal = get_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured"
        )

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_data_store(session: Session = Depends(get_db_session)) -> DataStore:
    """FastAPI dependency returning a DataStore bound to the request session."""
    return SqlAlchemyDataStore(session)
