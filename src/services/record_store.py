"""Durable keyed store contract and its adapters.

Both the lease manager and the message-link resolver talk to the store
through ``RecordStore``. The contract is deliberately small:

- ``get(key)`` returns the stored lease record or None.
- ``put_if_absent_or_status_equals(key, expected_statuses, record,
  expected_lease_id)`` is the single conditional write. It succeeds only if
  the row is absent (and ``LeaseStatus.none`` is expected) or the stored
  status is one of ``expected_statuses`` and, when given, the stored
  lease_id equals ``expected_lease_id``. Losing the condition is a normal
  result (``WriteResult.condition_failed``), not an exception.
- Infrastructure failures raise ``TransientStoreError``; no adapter retries.
- ``reclaim_expired(now)`` emulates the store's native TTL: it physically
  removes rows whose ``record_expiry_at`` has passed. Callers must never
  depend on it having run.

Adapters:
    SqlRecordStore: SQLAlchemy session, one statement per conditional write.
    InMemoryRecordStore: process-local dict guarded by a lock, for local
        runs and tests.
"""

import logging
import threading
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Iterable, Protocol

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.db.models import LeadDedupeRecord, LeaseStatus, MessageLinkToken
from src.errors.domain import TransientStoreError
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)


class WriteResult(str, Enum):
    """Outcome of a conditional write."""

    success = "success"
    condition_failed = "condition_failed"


@dataclass(frozen=True)
class LeaseRecord:
    """Immutable snapshot of a conversation's lead dedupe row."""

    conversation_id: str
    status: LeaseStatus
    record_expiry_at: int
    created_at: int
    updated_at: int
    lease_id: str | None = None
    lease_expires_at: int | None = None
    error_cooldown_until: int | None = None
    attempts: int = 0
    last_reason: str | None = None
    last_error: str | None = None
    message_id: str | None = None
    sent_at: int | None = None

    def is_retained(self, now: int) -> bool:
        """False once the record has logically aged out of the store."""
        return now < self.record_expiry_at


@dataclass(frozen=True)
class TokenRecord:
    """Immutable snapshot of a message-link token row."""

    token: str
    conversation_id: str
    kind: str
    to_phone: str
    body: str
    created_at: int
    record_expiry_at: int


class RecordStore(Protocol):
    """Contract required of the durable keyed store."""

    def get(self, key: str) -> LeaseRecord | None: ...

    def put_if_absent_or_status_equals(
        self,
        key: str,
        expected_statuses: Iterable[LeaseStatus],
        record: LeaseRecord,
        expected_lease_id: str | None = None,
    ) -> WriteResult: ...

    def get_token(self, token: str) -> TokenRecord | None: ...

    def put_token_if_absent(self, record: TokenRecord) -> WriteResult: ...

    def reclaim_expired(self, now: int) -> int: ...


def _lease_columns(record: LeaseRecord) -> dict:
    values = {f.name: getattr(record, f.name) for f in fields(record)}
    values["status"] = LeaseStatus(record.status).value
    return values


def _to_lease_record(row: LeadDedupeRecord) -> LeaseRecord:
    return LeaseRecord(
        conversation_id=row.conversation_id,
        status=LeaseStatus(row.status),
        record_expiry_at=row.record_expiry_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        lease_id=row.lease_id,
        lease_expires_at=row.lease_expires_at,
        error_cooldown_until=row.error_cooldown_until,
        attempts=row.attempts or 0,
        last_reason=row.last_reason,
        last_error=row.last_error,
        message_id=row.message_id,
        sent_at=row.sent_at,
    )


def _to_token_record(row: MessageLinkToken) -> TokenRecord:
    return TokenRecord(
        token=row.token,
        conversation_id=row.conversation_id,
        kind=row.kind,
        to_phone=row.to_phone,
        body=row.body or "",
        created_at=row.created_at,
        record_expiry_at=row.record_expiry_at,
    )


class SqlRecordStore:
    """RecordStore backed by a SQLAlchemy session.

    Create-if-absent is an INSERT whose primary-key IntegrityError means
    "condition failed". Compare-and-swap is one UPDATE with the expected
    status (and lease_id) in its WHERE clause; rowcount decides the winner.
    Every call ends its transaction so no read snapshot outlives the call.
    """

    def __init__(self, db: Session) -> None:
        """Initialize with a SQLAlchemy session.

        Args:
            db: Active database session. Owned by the caller.
        """
        self._db = db

    def _transient(self, operation: str, exc: Exception) -> TransientStoreError:
        self._db.rollback()
        logger.error(
            "Store %s failed: %s",
            operation,
            sanitize_error_message(f"{type(exc).__name__}: {exc}", max_length=300),
        )
        return TransientStoreError(f"store {operation} failed")

    def get(self, key: str) -> LeaseRecord | None:
        try:
            row = self._db.execute(
                select(LeadDedupeRecord)
                .where(LeadDedupeRecord.conversation_id == key)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            record = _to_lease_record(row) if row is not None else None
            self._db.commit()
        except SQLAlchemyError as e:
            raise self._transient("get", e) from e
        return record

    def put_if_absent_or_status_equals(
        self,
        key: str,
        expected_statuses: Iterable[LeaseStatus],
        record: LeaseRecord,
        expected_lease_id: str | None = None,
    ) -> WriteResult:
        expected = {LeaseStatus(s) for s in expected_statuses}
        stored_statuses = [s.value for s in expected if s is not LeaseStatus.none]
        values = _lease_columns(record)
        values["conversation_id"] = key

        if LeaseStatus.none in expected:
            try:
                self._db.execute(insert(LeadDedupeRecord).values(**values))
                self._db.commit()
                return WriteResult.success
            except IntegrityError:
                self._db.rollback()
                if not stored_statuses:
                    return WriteResult.condition_failed
            except SQLAlchemyError as e:
                raise self._transient("conditional insert", e) from e

        if not stored_statuses:
            return WriteResult.condition_failed

        stmt = update(LeadDedupeRecord).where(
            LeadDedupeRecord.conversation_id == key,
            LeadDedupeRecord.status.in_(stored_statuses),
        )
        if expected_lease_id is not None:
            stmt = stmt.where(LeadDedupeRecord.lease_id == expected_lease_id)
        values.pop("conversation_id")
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        try:
            result = self._db.execute(stmt)
            self._db.commit()
        except SQLAlchemyError as e:
            raise self._transient("conditional update", e) from e
        return WriteResult.success if result.rowcount == 1 else WriteResult.condition_failed

    def get_token(self, token: str) -> TokenRecord | None:
        try:
            row = self._db.execute(
                select(MessageLinkToken).where(MessageLinkToken.token == token)
            ).scalar_one_or_none()
            record = _to_token_record(row) if row is not None else None
            self._db.commit()
        except SQLAlchemyError as e:
            raise self._transient("token get", e) from e
        return record

    def put_token_if_absent(self, record: TokenRecord) -> WriteResult:
        values = {f.name: getattr(record, f.name) for f in fields(record)}
        try:
            self._db.execute(insert(MessageLinkToken).values(**values))
            self._db.commit()
        except IntegrityError:
            self._db.rollback()
            return WriteResult.condition_failed
        except SQLAlchemyError as e:
            raise self._transient("token insert", e) from e
        return WriteResult.success

    def reclaim_expired(self, now: int) -> int:
        try:
            leases = self._db.execute(
                delete(LeadDedupeRecord).where(LeadDedupeRecord.record_expiry_at <= now)
            )
            tokens = self._db.execute(
                delete(MessageLinkToken).where(MessageLinkToken.record_expiry_at <= now)
            )
            self._db.commit()
        except SQLAlchemyError as e:
            raise self._transient("reclaim", e) from e
        return (leases.rowcount or 0) + (tokens.rowcount or 0)


class InMemoryRecordStore:
    """Process-local RecordStore used by the test suite.

    All reads and conditional writes run under one lock, which gives the
    same per-key linearizability as the SQL adapter within one process.
    """

    def __init__(self) -> None:
        self._leases: dict[str, LeaseRecord] = {}
        self._tokens: dict[str, TokenRecord] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> LeaseRecord | None:
        with self._lock:
            return self._leases.get(key)

    def put_if_absent_or_status_equals(
        self,
        key: str,
        expected_statuses: Iterable[LeaseStatus],
        record: LeaseRecord,
        expected_lease_id: str | None = None,
    ) -> WriteResult:
        expected = {LeaseStatus(s) for s in expected_statuses}
        with self._lock:
            current = self._leases.get(key)
            if current is None:
                if LeaseStatus.none not in expected:
                    return WriteResult.condition_failed
            else:
                if current.status not in expected:
                    return WriteResult.condition_failed
                if expected_lease_id is not None and current.lease_id != expected_lease_id:
                    return WriteResult.condition_failed
            self._leases[key] = replace(record, conversation_id=key)
            return WriteResult.success

    def get_token(self, token: str) -> TokenRecord | None:
        with self._lock:
            return self._tokens.get(token)

    def put_token_if_absent(self, record: TokenRecord) -> WriteResult:
        with self._lock:
            if record.token in self._tokens:
                return WriteResult.condition_failed
            self._tokens[record.token] = record
            return WriteResult.success

    def reclaim_expired(self, now: int) -> int:
        with self._lock:
            stale_leases = [k for k, r in self._leases.items() if r.record_expiry_at <= now]
            stale_tokens = [k for k, r in self._tokens.items() if r.record_expiry_at <= now]
            for k in stale_leases:
                del self._leases[k]
            for k in stale_tokens:
                del self._tokens[k]
            return len(stale_leases) + len(stale_tokens)
