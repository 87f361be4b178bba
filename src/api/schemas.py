"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the LeadRelay REST API: the
send-lead request, the message-link resolution response and the admin
lease record view.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Lead schemas


class LeadSendRequest(BaseModel):
    """Request schema for sending a lead notification.

    The caller supplies the finished summary; nothing here generates copy.
    """

    conversation_id: str = Field(..., min_length=1, max_length=200)
    reason: str = Field(..., min_length=1, max_length=100)
    subject: str = Field(..., min_length=1, max_length=300)
    summary: str = Field(..., min_length=1, max_length=20000)
    customer_name: str | None = Field(None, max_length=200)
    customer_phone: str | None = Field(None, max_length=40)
    customer_email: str | None = Field(None, max_length=254)
    sms_draft: str | None = Field(None, max_length=2000)
    locale: str | None = Field(None, max_length=35)
    page_url: str | None = Field(None, max_length=2048)

    @field_validator("conversation_id", "reason", "subject")
    @classmethod
    def strip_required(cls, v: str) -> str:
        """Reject values that are only whitespace."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @field_validator(
        "customer_name", "customer_phone", "customer_email", "sms_draft", "locale", "page_url"
    )
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treat blank optional fields as absent."""
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None


class LeadSendResponse(BaseModel):
    """Response schema for a send-lead request."""

    ok: bool = True
    sent: bool
    outcome: Literal["delivered", "already_handled", "deferred"]


# Message link schemas


class MessageLinkResponse(BaseModel):
    """Private payload for a resolved message-link token."""

    ok: bool = True
    to_phone: str
    body: str


class ErrorResponse(BaseModel):
    """Error body shared by every failing endpoint."""

    ok: bool = False
    error: str


# Admin schemas


class LeaseRecordResponse(BaseModel):
    """Admin view of a conversation's lead dedupe record."""

    model_config = ConfigDict(from_attributes=True)

    conversation_id: str
    status: str
    lease_expires_at: int | None = None
    error_cooldown_until: int | None = None
    record_expiry_at: int
    attempts: int
    last_reason: str | None = None
    last_error: str | None = None
    message_id: str | None = None
    created_at: int
    updated_at: int
    sent_at: int | None = None
