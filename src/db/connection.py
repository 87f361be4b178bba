"""Database connection management for LeadRelay.

Provides synchronous database access using SQLAlchemy. SQLite is the
default; any SQLAlchemy URL with row-level atomic UPDATE semantics can be
used through DATABASE_URL.

Every connection carries a bounded timeout (LEADRELAY_STORE_TIMEOUT_SECONDS)
so a stalled store surfaces as a retryable error instead of hanging a
request.

Usage:
    from src.db.connection import get_db, init_db

    init_db()  # Create tables
    db = next(get_db())
    # ... use db session
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from src.db.models import Base

DEFAULT_STORE_TIMEOUT_SECONDS = 5


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. LEADRELAY_DB_PATH (converted to sqlite URL)
    3. sqlite:///<platform data dir>/leadrelay.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("LEADRELAY_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    from src.utils.paths import ensure_dirs_exist, get_default_db_path

    ensure_dirs_exist()
    return f"sqlite:///{get_default_db_path()}"


def get_store_timeout_seconds() -> int:
    """Store call timeout used before configuration is loaded.

    Reads LEADRELAY_STORE_TIMEOUT_SECONDS, the same variable that overrides
    ``store.timeout_seconds`` in the config file. Once the config is loaded
    the server and CLI call configure_engine() with the resolved value.
    """
    raw = os.environ.get("LEADRELAY_STORE_TIMEOUT_SECONDS", "").strip()
    try:
        value = int(raw) if raw else DEFAULT_STORE_TIMEOUT_SECONDS
    except ValueError:
        value = DEFAULT_STORE_TIMEOUT_SECONDS
    return value if value > 0 else DEFAULT_STORE_TIMEOUT_SECONDS


def build_engine(url: str, timeout_seconds: int | None = None, **kwargs: Any):
    """Create an engine with bounded connect and lock-wait timeouts.

    Args:
        url: SQLAlchemy database URL.
        timeout_seconds: Upper bound for acquiring a connection or lock.
        **kwargs: Extra create_engine() arguments (e.g. poolclass).

    Returns:
        Configured SQLAlchemy Engine.
    """
    timeout = timeout_seconds or get_store_timeout_seconds()
    if url.startswith("sqlite"):
        # sqlite3's timeout is how long a writer waits on a locked database.
        connect_args = {"check_same_thread": False, "timeout": timeout}
    elif url.startswith("postgresql"):
        connect_args = {"connect_timeout": timeout}
        kwargs.setdefault("pool_timeout", timeout)
    else:
        connect_args = {}
        kwargs.setdefault("pool_timeout", timeout)

    new_engine = create_engine(
        url,
        connect_args=connect_args,
        echo=os.environ.get("SQL_ECHO", "").lower() == "true",
        **kwargs,
    )

    if url.startswith("sqlite"):
        event.listen(new_engine, "connect", set_sqlite_pragma)
    return new_engine


def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for concurrent handlers.

    Enables:
    - journal_mode=WAL: concurrent readers plus a single writer, so lease
      lookups never block on an in-progress conditional write.
    - synchronous=NORMAL: commits are durable after WAL fsync.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.close()


# Engine creation
DATABASE_URL = get_database_url()

_engine_timeout = get_store_timeout_seconds()
engine = build_engine(DATABASE_URL, _engine_timeout)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def configure_engine(timeout_seconds: int) -> None:
    """Rebuild the engine when the configured store timeout differs.

    SessionLocal is rebound in place, so sessions opened afterwards use the
    new engine.

    Args:
        timeout_seconds: Resolved ``store.timeout_seconds``.
    """
    global engine, _engine_timeout
    if timeout_seconds == _engine_timeout:
        return
    engine.dispose()
    engine = build_engine(DATABASE_URL, timeout_seconds)
    SessionLocal.configure(bind=engine)
    _engine_timeout = timeout_seconds


# Dependency functions for FastAPI


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for synchronous operations.

    Intended for use with FastAPI's Depends() for request-scoped sessions.

    Yields:
        Session: SQLAlchemy session that will be closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            record = db.get(LeadDedupeRecord, "cthr_123")
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Initialization functions


def init_db() -> None:
    """Create all database tables synchronously.

    Safe to call multiple times; existing tables are left alone.
    """
    Base.metadata.create_all(bind=engine)


def close_db() -> None:
    """Close the engine and dispose of the connection pool."""
    engine.dispose()
