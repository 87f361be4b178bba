"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- In-memory SQLite sessions (StaticPool) and file-based SQLite engines
- Record store adapters (SQL and in-process)
- Lease and message-link configuration with short test windows
"""

import os
from collections.abc import Generator
from pathlib import Path

# src.db builds its engine at import time; point it at an in-memory
# database before any src import so tests never touch the user data dir.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.cli.config import LeaseConfig, MessageLinkConfig
from src.db.models import Base
from src.services.record_store import InMemoryRecordStore, SqlRecordStore

PROJECT_ROOT = Path(__file__).parent.parent


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests that take a long time to run"
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def test_db() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database for testing.

    Creates all tables, yields a session, and cleans up after test.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def file_db_sessionmaker(tmp_path: Path) -> Generator[sessionmaker, None, None]:
    """Session factory over a file-based SQLite database.

    Unlike the in-memory database, every session gets its own connection,
    so threads genuinely contend on the database lock.
    """
    from src.db.connection import build_engine

    engine = build_engine(f"sqlite:///{tmp_path / 'leadrelay-test.db'}", timeout_seconds=10)
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    """Empty in-process record store."""
    return InMemoryRecordStore()


@pytest.fixture
def sql_store(test_db: Session) -> SqlRecordStore:
    """Record store over the in-memory SQLite session."""
    return SqlRecordStore(test_db)


@pytest.fixture(params=["memory", "sql"])
def store(request, memory_store, sql_store):
    """Run a test once against each store adapter."""
    return memory_store if request.param == "memory" else sql_store


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def lease_config() -> LeaseConfig:
    """Lease timings: 120s lease, 300s cooldown, 30-day retention."""
    return LeaseConfig()


@pytest.fixture
def message_link_config() -> MessageLinkConfig:
    """Message links on the production origin with a 14-day TTL."""
    return MessageLinkConfig(public_base_url="https://craigs.autos", ttl_days=14)
