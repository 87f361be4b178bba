"""Database module for LeadRelay lease and token persistence."""

from src.db.connection import (
    SessionLocal,
    get_db,
    init_db,
)
from src.db.models import (
    LeadDedupeRecord,
    LeaseStatus,
    MessageLinkKind,
    MessageLinkToken,
)

__all__ = [
    # Models
    "LeadDedupeRecord",
    "MessageLinkToken",
    # Enums
    "LeaseStatus",
    "MessageLinkKind",
    # Connection
    "SessionLocal",
    "get_db",
    "init_db",
]
