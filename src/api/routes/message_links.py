"""API route for resolving message-link tokens.

GET /api/v1/message-link?token=<uuid> exchanges an opaque token for the
destination phone and draft body. Every response, success or failure,
carries ``Cache-Control: no-store`` because the payload is private.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from src.api.dependencies import get_now, get_store
from src.api.schemas import ErrorResponse, MessageLinkResponse
from src.errors.domain import DomainError
from src.services.message_link import resolve_message_link
from src.services.record_store import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/message-link", tags=["message-links"])

NO_STORE_HEADERS = {"Cache-Control": "no-store"}


@router.get(
    "",
    response_model=MessageLinkResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        410: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def get_message_link(
    request: Request,
    store: RecordStore = Depends(get_store),
    now: int = Depends(get_now),
) -> JSONResponse:
    """Resolve the token in the query string.

    Returns:
        200 {ok, to_phone, body}, or {ok: false, error} with 400 for a
        missing or malformed token, 404 unknown, 410 expired, 500 for a
        record without a destination and 503 when the store is down.
    """
    try:
        payload = resolve_message_link(store, request.url.query, now)
    except DomainError as exc:
        if exc.status_code >= 500:
            logger.error("Message link lookup failed: %s", exc)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.code).model_dump(),
            headers=NO_STORE_HEADERS,
        )
    return JSONResponse(
        status_code=200,
        content=MessageLinkResponse(to_phone=payload.to_phone, body=payload.body).model_dump(),
        headers=NO_STORE_HEADERS,
    )


@router.options("")
def message_link_preflight() -> Response:
    """Answer browser preflight requests with an empty 204."""
    return Response(status_code=204)
