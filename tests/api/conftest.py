"""Pytest fixtures for API tests.

Provides a test client whose database, clock, config and notifier
dependencies are overridden, plus helpers for seeding token records.
"""

from collections.abc import Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from src.api.dependencies import get_clock, get_config, get_notifier, get_now
from src.api.main import app
from src.cli.config import DeliveryConfig, LeadRelayConfig
from src.db.connection import get_db
from src.services.record_store import SqlRecordStore, TokenRecord


class FakeClock:
    """Settable epoch-seconds clock."""

    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> MagicMock:
    """Stand-in for the SES notifier; send() returns a message id."""
    mock = MagicMock()
    mock.send.return_value = "ses-message-1"
    return mock


@pytest.fixture
def test_config() -> LeadRelayConfig:
    return LeadRelayConfig(
        delivery=DeliveryConfig(
            lead_to_email="shop@example.com",
            lead_from_email="leads@example.com",
        )
    )


@pytest.fixture
def client(
    test_db: Session,
    clock: FakeClock,
    notifier: MagicMock,
    test_config: LeadRelayConfig,
    monkeypatch,
) -> Generator[TestClient, None, None]:
    """Create a TestClient with overridden dependencies.

    Args:
        test_db: Test database session fixture.
        clock: Settable clock used as the request-time ``now``.
        notifier: Mock notifier.
        test_config: Configuration served to routes.

    Yields:
        TestClient configured for testing.
    """

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    monkeypatch.delenv("LEADRELAY_ADMIN_API_KEY", raising=False)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = clock
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_config] = lambda: test_config
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def seed_token(test_db: Session):
    """Insert a message-link token record directly into the test database."""

    def _seed(token: str, ttl: int, to_phone: str = "+14081234567", body: str = "Hello from test"):
        record = TokenRecord(
            token=token,
            conversation_id="cthr_seed",
            kind="customer",
            to_phone=to_phone,
            body=body,
            created_at=0,
            record_expiry_at=ttl,
        )
        SqlRecordStore(test_db).put_token_if_absent(record)
        return record

    return _seed
