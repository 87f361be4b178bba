"""Shared-credential auth middleware for the admin endpoints.

Public endpoints (send lead, message-link resolution, health) are
anonymous. Everything under /api/v1/admin/ requires the admin key from
LEADRELAY_ADMIN_API_KEY, presented either as an X-API-Key header or as the
password of an HTTP Basic Authorization header. With no key configured the
admin endpoints stay closed.

This is a single shared secret, not per-user authorization.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import logging
import os
import threading
import time

from fastapi import Request
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

_PROTECTED_PATH_PREFIXES = ("/api/v1/admin/",)

# --- Rate limiting for auth failures ---
_AUTH_FAIL_MAX = 10  # Max failures per IP in the time window
_AUTH_FAIL_WINDOW_SECONDS = 300  # 5-minute sliding window
_auth_failures: dict[str, list[float]] = {}
_auth_lock = threading.Lock()  # Protects _auth_failures

# When LEADRELAY_TRUST_PROXY is "1" or "true", X-Forwarded-For is used for
# client IP extraction. Otherwise only request.client.host is used so
# callers cannot spoof IPs to dodge rate limiting.
_TRUST_PROXY = os.environ.get("LEADRELAY_TRUST_PROXY", "").strip().lower() in ("1", "true")


def _get_client_ip(request: Request) -> str:
    """Extract client IP from request, honoring X-Forwarded-For only behind a trusted proxy."""
    if _TRUST_PROXY:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _is_rate_limited(client_ip: str) -> bool:
    """Check if the client IP has exceeded the auth failure rate limit.

    Args:
        client_ip: Client IP address.

    Returns:
        True if the client should be blocked.
    """
    with _auth_lock:
        now = time.monotonic()
        timestamps = _auth_failures.get(client_ip, [])
        timestamps = [t for t in timestamps if now - t < _AUTH_FAIL_WINDOW_SECONDS]
        _auth_failures[client_ip] = timestamps
        return len(timestamps) >= _AUTH_FAIL_MAX


def _record_auth_failure(client_ip: str) -> None:
    with _auth_lock:
        _auth_failures.setdefault(client_ip, []).append(time.monotonic())


def reset_rate_limiter() -> None:
    """Reset the rate limiter state. Used by tests."""
    with _auth_lock:
        _auth_failures.clear()


# --- Key strength validation ---
_MIN_API_KEY_LENGTH = 32


def validate_api_key_strength() -> None:
    """Validate that the configured admin key meets minimum strength requirements.

    Called at startup.

    Raises:
        ValueError: If LEADRELAY_ADMIN_API_KEY is set but shorter than 32 characters.
    """
    key = get_expected_api_key()
    if key and len(key) < _MIN_API_KEY_LENGTH:
        raise ValueError(
            f"LEADRELAY_ADMIN_API_KEY is too short ({len(key)} chars). "
            f"Minimum length is {_MIN_API_KEY_LENGTH} characters for security."
        )


def get_expected_api_key() -> str:
    """Return the configured admin key; empty string means admin is closed."""
    return os.environ.get("LEADRELAY_ADMIN_API_KEY", "").strip()


def should_authenticate(path: str) -> bool:
    """Return True when this path should be protected by the admin key."""
    return path.startswith(_PROTECTED_PATH_PREFIXES)


def _provided_key(request: Request) -> str:
    """Read the key from X-API-Key, or the password of a Basic auth header."""
    header_key = request.headers.get("X-API-Key", "")
    if header_key:
        return header_key
    authorization = request.headers.get("Authorization", "")
    scheme, _, encoded = authorization.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return ""
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return ""
    return decoded.partition(":")[2]


async def maybe_require_api_key(request: Request, call_next) -> Response:
    """FastAPI middleware entrypoint for admin auth.

    Includes in-process rate limiting: blocks client IPs that exceed
    _AUTH_FAIL_MAX failures within _AUTH_FAIL_WINDOW_SECONDS.
    """
    if request.method.upper() == "OPTIONS" or not should_authenticate(request.url.path):
        return await call_next(request)

    expected_key = get_expected_api_key()
    if not expected_key:
        return JSONResponse(
            status_code=503,
            content={"ok": False, "error": "admin_not_configured"},
        )

    client_ip = _get_client_ip(request)

    if _is_rate_limited(client_ip):
        logger.warning("Auth rate limit exceeded for IP %s", client_ip)
        return JSONResponse(
            status_code=429,
            content={"ok": False, "error": "rate_limited"},
        )

    provided_key = _provided_key(request)
    if not provided_key or not hmac.compare_digest(
        provided_key.encode("utf-8"), expected_key.encode("utf-8")
    ):
        _record_auth_failure(client_ip)
        return JSONResponse(
            status_code=401,
            content={"ok": False, "error": "unauthorized"},
            headers={"WWW-Authenticate": 'Basic realm="leadrelay-admin"'},
        )
    return await call_next(request)
