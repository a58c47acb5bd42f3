"""Email API.

Read-only Gmail access for the signed-in user. Every route requires a session
and a connected Google account, and is limited by the ``api`` rate policy.

Examples:
    GET /api/emails?isRead=false                          unread messages
    GET /api/emails?timeRange=days&timeValue=7            last 7 days
    GET /api/emails?isRead=true&timeRange=hours&timeValue=24
    GET /api/emails?maxResults=100
    GET /api/emails/{message_id}
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from email_gateway.api.deps import authorize, get_mailbox, rate_limit
from email_gateway.api.errors import public_message
from email_gateway.auth.gates import require_connected_google, require_user
from email_gateway.exceptions import (
    AuthExpiredError,
    GmailAPIError,
    InvalidArgumentError,
    MessageNotFoundError,
    RemoteTimeoutError,
)
from email_gateway.gmail.filters import parse_filters
from email_gateway.mailbox import MailboxClient
from email_gateway.models import Identity
from email_gateway.ratelimit import API

logger = structlog.get_logger()

router = APIRouter(prefix="/api/emails", tags=["emails"], dependencies=[Depends(rate_limit(API))])

require_gmail_access = authorize(require_user, require_connected_google)

AUTH_EXPIRED_BODY = {
    "error": "Google authentication expired. Please re-authenticate.",
    "code": "AUTH_EXPIRED",
}


def _gmail_failure(
    request: Request,
    exc: GmailAPIError,
    *,
    identity: Identity,
    error: str,
    message_id: str | None = None,
) -> JSONResponse:
    logger.error(
        "gmail_request_failed",
        email=identity.email,
        method=request.method,
        path=request.url.path,
        message_id=message_id,
        error_type=type(exc).__name__,
        error=str(exc),
    )

    if isinstance(exc, AuthExpiredError):
        return JSONResponse(status_code=401, content=AUTH_EXPIRED_BODY)
    if isinstance(exc, MessageNotFoundError) and message_id is not None:
        return JSONResponse(status_code=404, content={"error": "Email not found", "message": str(exc)})
    if isinstance(exc, RemoteTimeoutError):
        return JSONResponse(
            status_code=504,
            content={"error": "Gmail request timed out", "message": public_message(request, str(exc))},
        )
    return JSONResponse(
        status_code=500,
        content={"error": error, "message": public_message(request, str(exc))},
    )


@router.get("")
async def list_emails(
    request: Request,
    identity: Identity = Depends(require_gmail_access),
    mailbox: MailboxClient = Depends(get_mailbox),
) -> Any:
    """List messages, filtered by ``isRead``, ``timeRange``/``timeValue`` and ``maxResults``."""

    try:
        filters = parse_filters(request.query_params)
    except InvalidArgumentError as exc:
        logger.warning("invalid_email_filters", email=identity.email, error=str(exc))
        return JSONResponse(status_code=400, content={"error": str(exc)})

    logger.info("fetching_emails_for_user", email=identity.email, filters=filters.to_response())

    try:
        emails = await mailbox.list_messages(identity, filters)
    except GmailAPIError as exc:
        return _gmail_failure(request, exc, identity=identity, error="Failed to fetch emails")

    return {
        "success": True,
        "count": len(emails),
        "filters": filters.to_response(),
        "emails": [e.to_response() for e in emails],
    }


@router.get("/{message_id}")
async def get_email(
    request: Request,
    message_id: str,
    identity: Identity = Depends(require_gmail_access),
    mailbox: MailboxClient = Depends(get_mailbox),
) -> Any:
    logger.info("fetching_email_for_user", email=identity.email, message_id=message_id)

    try:
        email = await mailbox.get_message(identity, message_id)
    except GmailAPIError as exc:
        return _gmail_failure(
            request,
            exc,
            identity=identity,
            error="Failed to fetch email",
            message_id=message_id,
        )

    return {"success": True, "email": email.to_response()}
