"""Lead dedupe lease manager.

Guarantees that at most one lead notification is sent per conversation,
even when several devices or retries race on the same conversation id.
Ownership of the send is a time-bounded lease recorded in the durable
store; every transition is a conditional write naming the status and
lease_id the writer observed.

State machine per conversation_id:

    none ──acquire──> leased ──commit──> sent (terminal)
                        │
                        └──fail──> error ──(cooldown elapses)──> acquirable

A lease whose lease_expires_at has passed, an error whose cooldown has
elapsed, and a record past its record_expiry_at all behave like ``none``.

Every operation takes an explicit ``now`` (epoch seconds); nothing here
reads the clock.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from enum import Enum

from src.cli.config import LeaseConfig
from src.db.models import LeaseStatus
from src.services.record_store import LeaseRecord, RecordStore, WriteResult
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

MAX_STORED_ERROR_LENGTH = 500


class AcquireOutcome(str, Enum):
    """Result of an acquire attempt."""

    granted = "granted"
    already_sent = "already_sent"
    held_by_other = "held_by_other"


@dataclass(frozen=True)
class AcquireResult:
    """What acquire decided for a conversation.

    Attributes:
        outcome: granted, already_sent or held_by_other.
        lease_id: The new lease id, set only when granted.
        cooling_down: True when held_by_other because a failed attempt's
            cooldown has not elapsed yet.
        available_at: Epoch seconds when the blocking lease or cooldown
            ends, when known.
    """

    outcome: AcquireOutcome
    lease_id: str | None = None
    cooling_down: bool = False
    available_at: int | None = None

    @property
    def granted(self) -> bool:
        return self.outcome is AcquireOutcome.granted


class LeadLeaseManager:
    """Acquire, commit and fail leases over a RecordStore."""

    def __init__(self, store: RecordStore, config: LeaseConfig | None = None) -> None:
        """Initialize the manager.

        Args:
            store: Durable store with conditional writes.
            config: Lease timings. Defaults to LeaseConfig().
        """
        self._store = store
        self._config = config or LeaseConfig()

    def get(self, conversation_id: str) -> LeaseRecord | None:
        """Return the stored record for a conversation, or None."""
        return self._store.get(conversation_id)

    def acquire(self, conversation_id: str, now: int, reason: str = "") -> AcquireResult:
        """Try to take ownership of the lead send for a conversation.

        Args:
            conversation_id: Dedupe key.
            now: Current epoch seconds.
            reason: Delivery reason tag recorded on the granted lease.

        Returns:
            AcquireResult. Losing a race is held_by_other, never granted.

        Raises:
            TransientStoreError: The store could not be read or written.
                No state changed.
        """
        current = self._store.get(conversation_id)
        if current is not None and not current.is_retained(now):
            logger.debug("Lead record %s past retention; treating as absent", conversation_id)
            current_live = None
        else:
            current_live = current

        if current_live is not None:
            blocked = self._blocked_result(current_live, now)
            if blocked is not None:
                logger.info(
                    "Lead lease for %s not granted: %s (status=%s)",
                    conversation_id,
                    blocked.outcome.value,
                    current_live.status.value,
                )
                return blocked

        lease_id = str(uuid.uuid4())
        new_record = LeaseRecord(
            conversation_id=conversation_id,
            status=LeaseStatus.leased,
            lease_id=lease_id,
            lease_expires_at=now + self._config.lease_duration_seconds,
            record_expiry_at=now + self._config.retention_seconds,
            created_at=current_live.created_at if current_live else now,
            updated_at=now,
            attempts=(current_live.attempts if current_live else 0) + 1,
            last_reason=reason or None,
            last_error=current_live.last_error if current_live else None,
        )

        if current is None:
            result = self._store.put_if_absent_or_status_equals(
                conversation_id, [LeaseStatus.none], new_record
            )
        else:
            result = self._store.put_if_absent_or_status_equals(
                conversation_id,
                [current.status],
                new_record,
                expected_lease_id=current.lease_id,
            )

        if result is WriteResult.success:
            logger.info(
                "Lead lease granted for %s (attempt %d, reason=%s)",
                conversation_id,
                new_record.attempts,
                reason or "-",
            )
            return AcquireResult(outcome=AcquireOutcome.granted, lease_id=lease_id)

        logger.info("Lead lease for %s lost to a concurrent writer", conversation_id)
        return AcquireResult(outcome=AcquireOutcome.held_by_other)

    def commit(
        self,
        conversation_id: str,
        lease_id: str,
        now: int,
        message_id: str | None = None,
    ) -> bool:
        """Mark a delivered lead as sent.

        Args:
            conversation_id: Dedupe key.
            lease_id: The lease id returned by acquire.
            now: Current epoch seconds.
            message_id: Provider message id to record.

        Returns:
            True if the record moved to sent. False (logged) when the
            record is no longer held under this lease id.

        Raises:
            TransientStoreError: The store could not be read or written.
        """
        current = self._owned_record(conversation_id, lease_id, "commit")
        if current is None:
            return False

        sent = replace(
            current,
            status=LeaseStatus.sent,
            lease_expires_at=None,
            error_cooldown_until=None,
            message_id=message_id,
            sent_at=now,
            updated_at=now,
            record_expiry_at=now + self._config.retention_seconds,
        )
        return self._transition(conversation_id, lease_id, sent, "commit")

    def fail(
        self,
        conversation_id: str,
        lease_id: str,
        now: int,
        error: str | None = None,
    ) -> bool:
        """Record a failed delivery and start the error cooldown.

        Args:
            conversation_id: Dedupe key.
            lease_id: The lease id returned by acquire.
            now: Current epoch seconds.
            error: Failure description; redacted before it is stored.

        Returns:
            True if the record moved to error. False (logged) on lease
            mismatch.

        Raises:
            TransientStoreError: The store could not be read or written.
        """
        current = self._owned_record(conversation_id, lease_id, "fail")
        if current is None:
            return False

        failed = replace(
            current,
            status=LeaseStatus.error,
            lease_expires_at=None,
            error_cooldown_until=now + self._config.error_cooldown_seconds,
            last_error=(
                sanitize_error_message(error, max_length=MAX_STORED_ERROR_LENGTH)
                if error
                else None
            ),
            updated_at=now,
            record_expiry_at=now + self._config.retention_seconds,
        )
        return self._transition(conversation_id, lease_id, failed, "fail")

    def _blocked_result(self, record: LeaseRecord, now: int) -> AcquireResult | None:
        """Return the non-granted result for a live record, or None if claimable."""
        if record.status is LeaseStatus.sent:
            return AcquireResult(outcome=AcquireOutcome.already_sent)
        if record.status is LeaseStatus.leased:
            if record.lease_expires_at is not None and record.lease_expires_at > now:
                return AcquireResult(
                    outcome=AcquireOutcome.held_by_other,
                    available_at=record.lease_expires_at,
                )
            return None
        if record.status is LeaseStatus.error:
            if record.error_cooldown_until is not None and record.error_cooldown_until > now:
                return AcquireResult(
                    outcome=AcquireOutcome.held_by_other,
                    cooling_down=True,
                    available_at=record.error_cooldown_until,
                )
            return None
        return None

    def _owned_record(
        self, conversation_id: str, lease_id: str, operation: str
    ) -> LeaseRecord | None:
        current = self._store.get(conversation_id)
        if (
            current is None
            or current.status is not LeaseStatus.leased
            or current.lease_id != lease_id
        ):
            logger.warning(
                "Lead lease %s for %s ignored: lease %s no longer held (status=%s)",
                operation,
                conversation_id,
                lease_id[:8],
                current.status.value if current else "none",
            )
            return None
        return current

    def _transition(
        self, conversation_id: str, lease_id: str, record: LeaseRecord, operation: str
    ) -> bool:
        result = self._store.put_if_absent_or_status_equals(
            conversation_id,
            [LeaseStatus.leased],
            record,
            expected_lease_id=lease_id,
        )
        if result is WriteResult.success:
            logger.info("Lead lease %s for %s -> %s", operation, conversation_id, record.status.value)
            return True
        logger.warning(
            "Lead lease %s for %s lost: lease %s replaced concurrently",
            operation,
            conversation_id,
            lease_id[:8],
        )
        return False
