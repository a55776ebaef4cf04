"""
Database connection and session management.

This module provides:
- SQLAlchemy engine configuration with connection pooling
- Session factory for database operations
- Base class for declarative models
- FastAPI dependency for database session management

Pool sizing only applies to server databases; SQLite URLs (used by the
test-suite and local experiments) get SQLAlchemy's default pool.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from typing import Generator

from .config import settings


def _engine_options(database_url: str) -> dict:
    """Connection pool options for the given URL."""
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    # pool_pre_ping: Verifies connections are alive before using them
    # pool_recycle: Recycle connections after 1 hour to prevent stale connections
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 3600,
    }


engine = create_engine(
    settings.database_url,
    echo=False,              # Set to True for SQL query logging (debug only)
    **_engine_options(settings.database_url),
)


# Session factory for creating database sessions
# autocommit=False: Changes require explicit commit() calls
# autoflush=False: Changes are not automatically flushed to DB (better control)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


# Base class for all SQLAlchemy declarative models
Base = declarative_base()


def get_db() -> Generator:
    """
    FastAPI dependency for database session management.

    Usage:
        ```python
        @router.get("/items")
        def get_items(db: Session = Depends(get_db)):
            return db.query(Item).all()
        ```

    Yields:
        Session: SQLAlchemy database session

    Note:
        The session is automatically closed after the request completes,
        even if an exception occurs. This prevents connection leaks.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        # Always close the session, even if an exception occurred
        db.close()
