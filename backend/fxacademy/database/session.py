"""
Database engine and session handling.

One engine per process, created on first use from DATABASE_URL. Route
handlers get a request-scoped session through get_db_session; scripts
use session_scope.
"""

import os
import logging
from contextlib import contextmanager
from typing import AsyncGenerator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from fastapi import HTTPException, status

from fxacademy.config.settings import normalize_database_url

logger = logging.getLogger(__name__)

_engine = None
_SessionLocal = None


def _get_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")
    return normalize_database_url(database_url)


def get_engine():
    """
    Get or create the engine.

    PostgreSQL gets a small pre-pinged pool. SQLite (local runs) is
    opened without thread checks so the threadpool can share it.
    """
    global _engine
    if _engine is None:
        try:
            database_url = _get_database_url()
        except ValueError as e:
            logger.error("Failed to create database engine", extra={"error": str(e)})
            raise

        if database_url.startswith("sqlite"):
            _engine = create_engine(database_url, connect_args={"check_same_thread": False})
        else:
            _engine = create_engine(
                database_url,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


async def get_db_session() -> AsyncGenerator[Session, None]:
    """
    FastAPI dependency yielding one session per request.

    Services commit their own work; anything left uncommitted is
    discarded when the session closes. Answers 503 when no database
    is configured.
    """
    try:
        SessionLocal = get_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "database_unavailable", "message": "Database not configured"},
        )

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for scripts: commits on success, rolls back on error."""
    try:
        SessionLocal = get_session_factory()
    except ValueError as e:
        raise RuntimeError(f"Database not configured: {e}")

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
