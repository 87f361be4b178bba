"""SQLAlchemy ORM models for the LeadRelay store.

Defines the two keyed record types shared by the lease manager and the
message-link token resolver. Uses SQLAlchemy 2.0 style with Mapped and
mapped_column. All timestamps are integer epoch seconds so that every
state transition can be computed from an explicitly passed ``now``.
"""

import time
from enum import Enum

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def now_epoch_seconds() -> int:
    """Current wall-clock time as whole epoch seconds."""
    return int(time.time())


# Enums matching the database schema constraints


class LeaseStatus(str, Enum):
    """Status values for a conversation's lead dedupe record.

    Lifecycle: none -> leased -> sent
               leased -> error -> (cooldown elapses) -> leased
               leased -> (lease expires) -> leased

    ``none`` is never stored; it names the absence of a row.
    """

    none = "none"
    leased = "leased"
    sent = "sent"
    error = "error"


class MessageLinkKind(str, Enum):
    """Who a message link is addressed to."""

    customer = "customer"
    draft = "draft"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class LeadDedupeRecord(Base):
    """One row per conversation guarding its lead notification.

    Attributes:
        conversation_id: Opaque, stable conversation identifier (dedupe key).
        status: Current LeaseStatus value (never 'none').
        lease_id: Opaque id of the holder that last acquired the lease.
        lease_expires_at: Epoch seconds; meaningful while status is 'leased'.
        error_cooldown_until: Epoch seconds; meaningful while status is 'error'.
        record_expiry_at: Retention expiry; the row reads as absent afterwards.
        attempts: Number of leases granted for this conversation.
    """

    __tablename__ = "lead_dedupe"

    conversation_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    lease_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    lease_expires_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_cooldown_until: Mapped[int | None] = mapped_column(Integer, nullable=True)
    record_expiry_at: Mapped[int] = mapped_column(Integer, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)
    sent_at: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_lead_dedupe_status", "status"),
        Index("idx_lead_dedupe_record_expiry", "record_expiry_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LeadDedupeRecord(conversation_id={self.conversation_id!r}, "
            f"status={self.status!r}, attempts={self.attempts})>"
        )


class MessageLinkToken(Base):
    """Short-lived token that resolves to a private SMS destination and body.

    The token itself is the primary key and is generated by the issuer.
    Rows are read-only after creation; ``record_expiry_at`` is the logical
    expiry checked on every resolve, independent of physical cleanup.
    """

    __tablename__ = "message_link_tokens"

    token: Mapped[str] = mapped_column(String(36), primary_key=True)
    conversation_id: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MessageLinkKind.customer.value
    )
    to_phone: Mapped[str] = mapped_column(String(40), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    record_expiry_at: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_message_link_tokens_conversation", "conversation_id"),
        Index("idx_message_link_tokens_record_expiry", "record_expiry_at"),
    )

    def __repr__(self) -> str:
        return f"<MessageLinkToken(token={self.token!r}, kind={self.kind!r})>"
