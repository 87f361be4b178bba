"""Lead dispatch orchestration: acquire, link, deliver, then commit or fail.

This is the only path that sends a lead notification. The send happens
strictly after the lease manager grants ownership, and its outcome always
ends in exactly one commit or fail on that lease.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from src.db.models import MessageLinkKind, now_epoch_seconds
from src.errors.domain import ConflictError, DeliveryError, TransientStoreError
from src.services.lead_delivery import LeadNotification
from src.services.lead_lease import AcquireOutcome, LeadLeaseManager
from src.services.message_link import MessageLinkIssuer, with_link_channel
from src.utils.redaction import mask_phone

logger = logging.getLogger(__name__)

GOOGLE_VOICE_CHANNEL = "google_voice"


class LeadNotifier(Protocol):
    """Anything that can deliver a lead notification and return its message id."""

    def send(self, notification: LeadNotification) -> str: ...


class DispatchOutcome(str, Enum):
    """Client-visible result of a send-lead request."""

    delivered = "delivered"
    already_handled = "already_handled"
    deferred = "deferred"


@dataclass(frozen=True)
class LeadRequest:
    """A caller's request to notify the shop about a conversation."""

    conversation_id: str
    reason: str
    subject: str
    summary: str
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    sms_draft: str | None = None
    locale: str | None = None
    page_url: str | None = None


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of dispatch plus diagnostics for logs and responses."""

    outcome: DispatchOutcome
    message_id: str | None = None
    cooling_down: bool = False
    retry_after: int | None = None

    @property
    def sent(self) -> bool:
        return self.outcome is DispatchOutcome.delivered


class LeadDispatcher:
    """Runs one send-lead request against the lease protocol."""

    def __init__(
        self,
        leases: LeadLeaseManager,
        issuer: MessageLinkIssuer,
        notifier: LeadNotifier,
        clock: Callable[[], int] = now_epoch_seconds,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            leases: Lease manager guarding the send.
            issuer: Message-link token issuer for customer links.
            notifier: Delivery pipeline.
            clock: Epoch-seconds clock read after delivery returns, so
                commit and fail are stamped with the time they happen.
        """
        self._leases = leases
        self._issuer = issuer
        self._notifier = notifier
        self._clock = clock

    def dispatch(self, request: LeadRequest, now: int) -> DispatchResult:
        """Send the lead notification at most once for its conversation.

        Args:
            request: Lead content from the caller.
            now: Current epoch seconds.

        Returns:
            DispatchResult. already_handled and deferred are successful
            no-ops; neither is retried here.

        Raises:
            TransientStoreError: The lease could not be acquired.
            DeliveryError: The notification was not sent. The lease has
                been moved to error (best effort).
        """
        acquired = self._leases.acquire(request.conversation_id, now, request.reason)

        if acquired.outcome is AcquireOutcome.already_sent:
            return DispatchResult(outcome=DispatchOutcome.already_handled)
        if acquired.outcome is AcquireOutcome.held_by_other:
            retry_after = (
                max(acquired.available_at - now, 0) if acquired.available_at is not None else None
            )
            return DispatchResult(
                outcome=DispatchOutcome.deferred,
                cooling_down=acquired.cooling_down,
                retry_after=retry_after,
            )

        lease_id = acquired.lease_id
        sms_link, google_voice_link = self._customer_links(request, now)
        notification = LeadNotification(
            conversation_id=request.conversation_id,
            reason=request.reason,
            subject=request.subject,
            summary=request.summary,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            customer_email=request.customer_email,
            sms_draft=request.sms_draft,
            locale=request.locale,
            page_url=request.page_url,
            sms_link=sms_link,
            google_voice_link=google_voice_link,
        )

        try:
            message_id = self._notifier.send(notification)
        except DeliveryError as exc:
            self._record_failure(request.conversation_id, lease_id, now, str(exc))
            raise

        try:
            committed = self._leases.commit(
                request.conversation_id, lease_id, max(now, self._clock()), message_id
            )
        except TransientStoreError:
            committed = False
        if not committed:
            logger.error(
                "Lead for %s was delivered (message %s) but the lease could not be committed",
                request.conversation_id,
                message_id,
            )
        return DispatchResult(outcome=DispatchOutcome.delivered, message_id=message_id)

    def _customer_links(self, request: LeadRequest, now: int) -> tuple[str | None, str | None]:
        """Issue a customer token and build its SMS and Google Voice links."""
        if not request.customer_phone or not request.sms_draft:
            return None, None
        try:
            record = self._issuer.issue(
                request.conversation_id,
                MessageLinkKind.customer,
                request.customer_phone,
                request.sms_draft,
                now,
            )
        except (ConflictError, TransientStoreError) as exc:
            logger.warning(
                "No message link for %s (to %s): %s",
                request.conversation_id,
                mask_phone(request.customer_phone),
                exc,
            )
            return None, None
        sms_link = self._issuer.link_for(record, request.page_url)
        return sms_link, with_link_channel(sms_link, GOOGLE_VOICE_CHANNEL)

    def _record_failure(self, conversation_id: str, lease_id: str, now: int, error: str) -> None:
        try:
            self._leases.fail(conversation_id, lease_id, max(now, self._clock()), error)
        except TransientStoreError:
            # Lease expiry still frees the conversation for a later retry.
            logger.error("Could not record delivery failure for %s", conversation_id)
