"""Admin API routes for inspecting lead dedupe state.

Protected by the admin key middleware (see src.api.middleware.auth).
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends

from src.api.dependencies import get_lease_manager, get_now
from src.api.schemas import LeaseRecordResponse
from src.errors.domain import NotFoundError
from src.services.lead_lease import LeadLeaseManager

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/leads/{conversation_id}", response_model=LeaseRecordResponse)
def get_lead_record(
    conversation_id: str,
    manager: LeadLeaseManager = Depends(get_lease_manager),
    now: int = Depends(get_now),
) -> LeaseRecordResponse:
    """Get the lead dedupe record for a conversation.

    Args:
        conversation_id: Dedupe key.
        manager: LeadLeaseManager (injected).
        now: Current epoch seconds (injected).

    Returns:
        The stored record.

    Raises:
        NotFoundError: No record, or the record is past its retention.
    """
    record = manager.get(conversation_id)
    if record is None or not record.is_retained(now):
        raise NotFoundError("Lead record", conversation_id)
    return LeaseRecordResponse(**{**asdict(record), "status": record.status.value})
