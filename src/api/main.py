"""FastAPI application for the LeadRelay API.

Provides the main application instance with routers, middleware,
and exception handlers configured.
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version
from typing import Any

from fastapi import Depends, FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import get_config
from src.api.middleware.auth import maybe_require_api_key, validate_api_key_strength
from src.api.routes import admin, leads, message_links
from src.api.schemas import ErrorResponse
from src.cli.config import LeadRelayConfig
from src.db.connection import close_db, configure_engine, get_db_context, init_db
from src.db.models import now_epoch_seconds
from src.errors import DomainError
from src.services.record_store import SqlRecordStore

logger = logging.getLogger(__name__)

# Module-level state for the health endpoint
_startup_time: float = 0.0


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _package_version() -> str:
    try:
        return _pkg_version("leadrelay")
    except PackageNotFoundError:
        return "unknown"


def reclaim_expired_records(now: int) -> int:
    """Physically remove lease and token rows past their record expiry.

    Emulates the store's eventual TTL reclamation. Correctness never
    depends on it: expired rows already read as absent.
    """
    with get_db_context() as db:
        removed = SqlRecordStore(db).reclaim_expired(now)
    if removed:
        logger.info("Reclaimed %d expired store records", removed)
    return removed


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate settings, bind the store, reclaim expired rows; dispose on exit."""
    global _startup_time

    # --- Startup ---
    _startup_time = _time.time()

    # Fail fast on a weak admin key or invalid configuration
    validate_api_key_strength()
    config = get_config()

    configure_engine(config.store.timeout_seconds)
    init_db()

    # Non-blocking: failures logged, not propagated
    try:
        reclaim_expired_records(now_epoch_seconds())
    except DomainError as e:
        logger.error("Startup reclamation failed (non-blocking): %s", e)

    yield

    # --- Shutdown ---
    get_config.cache_clear()
    close_db()


app = FastAPI(
    title="LeadRelay API",
    description="Exactly-once lead notifications and private message-link tokens",
    version="0.1.0",
    lifespan=lifespan,
)

# Admin endpoints require LEADRELAY_ADMIN_API_KEY.
app.middleware("http")(maybe_require_api_key)

# CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
allowed_origins = _parse_allowed_origins()
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map every DomainError to {ok: false, error: <code>}.

    The exception message is logged, never returned, so store and provider
    details stay out of responses.

    Args:
        request: The incoming request.
        exc: The DomainError exception.

    Returns:
        JSONResponse with the error's status code.
    """
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.code).model_dump(),
    )


# Include routers
app.include_router(leads.router, prefix="/api/v1")
app.include_router(message_links.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


@app.get("/health")
def health_check() -> dict:
    """Liveness check with version and uptime.

    Returns:
        Dictionary with health status.
    """
    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    return {
        "status": "healthy",
        "version": _package_version(),
        "uptime_seconds": uptime,
    }


@app.get("/readyz")
def readiness_check(config: LeadRelayConfig = Depends(get_config)):
    """Dependency-aware readiness check for local/container deployments."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    checks: dict[str, dict[str, Any]] = {}

    # DB connectivity gate.
    try:
        with get_db_context() as db:
            db.execute(text("SELECT 1"))
        checks["database"] = {"status": "ok"}
    except SQLAlchemyError as exc:
        logger.error("Readiness database check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "uptime_seconds": uptime,
                "checks": {"database": {"status": "error"}},
            },
        )

    delivery = config.delivery
    missing = [
        key
        for key, value in (
            ("lead_to_email", delivery.lead_to_email),
            ("lead_from_email", delivery.lead_from_email),
        )
        if not value
    ]
    if missing:
        checks["delivery"] = {"status": "degraded", "missing": missing}
        status = "degraded"
    else:
        checks["delivery"] = {"status": "configured"}
        status = "ready"

    if os.environ.get("LEADRELAY_ADMIN_API_KEY", "").strip():
        checks["admin"] = {"status": "configured"}
    else:
        checks["admin"] = {"status": "disabled"}

    return {
        "status": status,
        "uptime_seconds": uptime,
        "checks": checks,
    }
