"""Error handling framework for LeadRelay.

Every failure the core can surface is a DomainError subclass carrying a
stable client-facing code and an HTTP status:

- 4xx: ValidationError (missing_token, invalid_token), NotFoundError,
  ExpiredError
- 409: ConflictError (benign duplicate suppression, never a failure)
- 5xx: BadRecordError, TransientStoreError, DeliveryError
"""

from src.errors.domain import (
    BadRecordError,
    ConflictError,
    DeliveryError,
    DomainError,
    ExpiredError,
    InvalidTokenError,
    MissingTokenError,
    NotFoundError,
    TokenExpiredError,
    TokenNotFoundError,
    TransientStoreError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "ValidationError",
    "MissingTokenError",
    "InvalidTokenError",
    "NotFoundError",
    "TokenNotFoundError",
    "ExpiredError",
    "TokenExpiredError",
    "ConflictError",
    "BadRecordError",
    "TransientStoreError",
    "DeliveryError",
]
