"""Service layer for LeadRelay.

Provides the lead dedupe lease protocol, message-link token issuance and
resolution, and lead notification delivery.
"""

from src.services.lead_dispatch import (
    DispatchOutcome,
    DispatchResult,
    LeadDispatcher,
    LeadRequest,
)
from src.services.lead_lease import AcquireOutcome, AcquireResult, LeadLeaseManager
from src.services.message_link import MessageLinkIssuer, TokenPayload, resolve_message_link
from src.services.record_store import (
    InMemoryRecordStore,
    RecordStore,
    SqlRecordStore,
    WriteResult,
)

__all__ = [
    "LeadLeaseManager",
    "AcquireOutcome",
    "AcquireResult",
    "LeadDispatcher",
    "LeadRequest",
    "DispatchOutcome",
    "DispatchResult",
    "MessageLinkIssuer",
    "TokenPayload",
    "resolve_message_link",
    "RecordStore",
    "SqlRecordStore",
    "InMemoryRecordStore",
    "WriteResult",
]
