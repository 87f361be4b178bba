"""Typed domain exceptions for API error mapping.

Each exception carries a stable machine-readable ``code`` (returned to
clients as ``{"ok": false, "error": code}``) and the HTTP ``status_code``
the API layer should use. Messages are for logs only and are never sent
to clients, so store or provider details cannot leak.

Usage:
    # In service layer
    raise TokenExpiredError(token)

    # In the API layer a single exception handler maps every DomainError
    # to its status_code and code.
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    code = "server_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(DomainError):
    """Malformed caller input. Maps to HTTP 400, never retried."""

    code = "invalid_request"
    status_code = 400


class MissingTokenError(ValidationError):
    """The token query parameter is absent or blank."""

    code = "missing_token"

    def __init__(self) -> None:
        super().__init__("token parameter is missing")


class InvalidTokenError(ValidationError):
    """The token is not a canonical 8-4-4-4-12 hexadecimal UUID."""

    code = "invalid_token"

    def __init__(self) -> None:
        super().__init__("token is not a well-formed UUID")


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    code = "not_found"
    status_code = 404

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class TokenNotFoundError(NotFoundError):
    """No message-link record exists for a well-formed token."""

    def __init__(self, token: str) -> None:
        super().__init__("Message link token", token[:8])


class ExpiredError(DomainError):
    """Resource existed but its validity window has lapsed. Maps to HTTP 410."""

    code = "expired"
    status_code = 410


class TokenExpiredError(ExpiredError):
    """The message-link token is past its record expiry."""

    def __init__(self, token: str, expired_at: int) -> None:
        super().__init__(f"Message link token '{token[:8]}' expired at {expired_at}")
        self.expired_at = expired_at


class ConflictError(DomainError):
    """Another caller already owns or completed the work.

    Duplicate suppression is a correctness feature: callers treat this
    as success and it never becomes an error response.
    """

    code = "conflict"
    status_code = 409

    def __init__(self, message: str) -> None:
        super().__init__(message)


class BadRecordError(DomainError):
    """A stored record is missing a required field. Maps to HTTP 500."""

    code = "bad_record"
    status_code = 500


class TransientStoreError(DomainError):
    """The durable store was unreachable or timed out. Maps to HTTP 503.

    Retryable by the caller with backoff; nothing retries it internally.
    """

    code = "store_unavailable"
    status_code = 503


class DeliveryError(DomainError):
    """The downstream notification send failed. Maps to HTTP 502.

    The dispatcher converts this into a lease ``fail`` transition before
    re-raising it.
    """

    code = "delivery_failed"
    status_code = 502
