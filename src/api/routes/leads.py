"""API route for sending lead notifications.

POST /api/v1/leads/send runs the lead through the dedupe lease protocol.
Repeated or concurrent calls for the same conversation_id deliver at most
one notification; the losers get a successful no-op response.
"""

import logging

from fastapi import APIRouter, Depends

from src.api.dependencies import get_dispatcher, get_now
from src.api.schemas import LeadSendRequest, LeadSendResponse
from src.services.lead_dispatch import LeadDispatcher, LeadRequest
from src.utils.redaction import redact_for_logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leads", tags=["leads"])


@router.post("/send", response_model=LeadSendResponse)
def send_lead(
    payload: LeadSendRequest,
    dispatcher: LeadDispatcher = Depends(get_dispatcher),
    now: int = Depends(get_now),
) -> LeadSendResponse:
    """Send the lead notification for a conversation at most once.

    Args:
        payload: Lead content supplied by the chat backend.
        dispatcher: LeadDispatcher (injected).
        now: Current epoch seconds (injected).

    Returns:
        delivered, already_handled or deferred. Store and delivery
        failures surface through the DomainError handler as 503 and 502.
    """
    fields = payload.model_dump()
    logger.info("Lead send requested: %s", redact_for_logging(fields))
    result = dispatcher.dispatch(LeadRequest(**fields), now)
    if result.cooling_down:
        logger.info(
            "Lead for %s deferred during error cooldown (retry in %ss)",
            payload.conversation_id,
            result.retry_after,
        )
    return LeadSendResponse(sent=result.sent, outcome=result.outcome.value)
