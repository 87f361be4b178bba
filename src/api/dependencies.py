"""FastAPI dependency providers shared by the route modules.

Every collaborator a route needs (config, store, clock, notifier) comes
from here so tests can swap any of them through app.dependency_overrides.
"""

import os
from collections.abc import Callable
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from src.cli.config import LeadRelayConfig, load_config
from src.db.connection import get_db
from src.db.models import now_epoch_seconds
from src.services.lead_delivery import SesLeadNotifier
from src.services.lead_dispatch import LeadDispatcher, LeadNotifier
from src.services.lead_lease import LeadLeaseManager
from src.services.message_link import MessageLinkIssuer
from src.services.record_store import RecordStore, SqlRecordStore


@lru_cache(maxsize=1)
def get_config() -> LeadRelayConfig:
    """Load configuration once per process (LEADRELAY_CONFIG_PATH or search path)."""
    return load_config(os.environ.get("LEADRELAY_CONFIG_PATH") or None)


def get_now() -> int:
    """Current epoch seconds for the request."""
    return now_epoch_seconds()


def get_clock() -> Callable[[], int]:
    """Clock the dispatcher reads after delivery returns."""
    return now_epoch_seconds


def get_store(db: Session = Depends(get_db)) -> RecordStore:
    """Request-scoped store over the request's database session."""
    return SqlRecordStore(db)


@lru_cache(maxsize=1)
def _shared_notifier() -> SesLeadNotifier:
    # One notifier per process so the boto3 client and its pool are reused.
    return SesLeadNotifier(get_config().delivery)


def get_notifier() -> LeadNotifier:
    """Lead notification delivery pipeline."""
    return _shared_notifier()


def get_lease_manager(
    store: RecordStore = Depends(get_store),
    config: LeadRelayConfig = Depends(get_config),
) -> LeadLeaseManager:
    """Dependency injector for LeadLeaseManager."""
    return LeadLeaseManager(store, config.lease)


def get_dispatcher(
    store: RecordStore = Depends(get_store),
    config: LeadRelayConfig = Depends(get_config),
    notifier: LeadNotifier = Depends(get_notifier),
    clock: Callable[[], int] = Depends(get_clock),
) -> LeadDispatcher:
    """Dependency injector for LeadDispatcher."""
    return LeadDispatcher(
        LeadLeaseManager(store, config.lease),
        MessageLinkIssuer(store, config.message_link),
        notifier,
        clock=clock,
    )
