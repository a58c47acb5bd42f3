"""Google login, logout and current-user routes."""

from __future__ import annotations

import secrets
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from email_gateway.api.deps import (
    authorize,
    get_app_settings,
    get_caller,
    get_identities,
    get_oauth,
    get_sessions,
    rate_limit,
)
from email_gateway.auth.gates import Caller, require_user
from email_gateway.auth.identities import IdentityStore
from email_gateway.auth.oauth import GoogleOAuth
from email_gateway.auth.sessions import SessionStore
from email_gateway.config import Settings
from email_gateway.exceptions import AuthenticationError, ConfigurationError
from email_gateway.models import Identity
from email_gateway.ratelimit import STANDARD, STRICT

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["auth"])

OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_MAX_AGE = 10 * 60


def _redirect(path: str) -> RedirectResponse:
    return RedirectResponse(path, status_code=302)


@router.get("/google", dependencies=[Depends(rate_limit(STRICT))])
def google_login(
    oauth: GoogleOAuth = Depends(get_oauth),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    """Redirect to Google's consent screen."""

    try:
        url, state = oauth.authorization_url()
    except ConfigurationError as exc:
        logger.error("google_login_unavailable", error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Google login is not configured"},
        )

    response = _redirect(url)
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        max_age=OAUTH_STATE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )
    return response


@router.get("/google/callback", dependencies=[Depends(rate_limit(STRICT))])
async def google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    oauth: GoogleOAuth = Depends(get_oauth),
    identities: IdentityStore = Depends(get_identities),
    sessions: SessionStore = Depends(get_sessions),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    """Complete the OAuth exchange and start a session."""

    failure = _redirect(settings.auth_failure_path)
    failure.delete_cookie(OAUTH_STATE_COOKIE)

    expected_state = request.cookies.get(OAUTH_STATE_COOKIE)
    if error or not code or not state or not expected_state:
        logger.warning("google_callback_rejected", reason=error or "missing_code_or_state")
        return failure
    if not secrets.compare_digest(state, expected_state):
        logger.warning("google_callback_rejected", reason="state_mismatch")
        return failure

    try:
        login = await oauth.exchange(code, state)
        identity = identities.upsert_google_login(
            email=login.email,
            name=login.name,
            access_token=login.access_token,
            refresh_token=login.refresh_token,
        )
    except (AuthenticationError, ConfigurationError, ValueError) as exc:
        logger.warning("google_login_failed", error=str(exc))
        return failure

    previous = request.cookies.get(settings.session_cookie_name)
    if previous:
        sessions.destroy(previous)
    token = sessions.create(identity.id)

    response = _redirect(settings.auth_success_path)
    response.delete_cookie(OAUTH_STATE_COOKIE)
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )
    logger.info("session_created", email=identity.email)
    return response


@router.get("/success", dependencies=[Depends(rate_limit(STANDARD))])
def auth_success(
    caller: Caller = Depends(get_caller),
    settings: Settings = Depends(get_app_settings),
) -> Any:
    if not isinstance(caller, Identity):
        logger.warning("auth_success_without_session")
        return _redirect(settings.auth_failure_path)

    logger.info("user_authenticated", email=caller.email)
    return {
        "success": True,
        "message": "Authentication successful",
        "user": caller.public_view(),
    }


@router.get("/failure", dependencies=[Depends(rate_limit(STANDARD))])
def auth_failure() -> JSONResponse:
    logger.warning("authentication_failed")
    return JSONResponse(status_code=401, content={"success": False, "message": "Authentication failed"})


@router.get("/logout", dependencies=[Depends(rate_limit(STANDARD))])
def logout(
    request: Request,
    caller: Caller = Depends(get_caller),
    sessions: SessionStore = Depends(get_sessions),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        sessions.destroy(token)

    email = caller.email if isinstance(caller, Identity) else "unknown"
    logger.info("user_logged_out", email=email)

    response = JSONResponse(content={"success": True, "message": "Logged out successfully"})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get("/user", dependencies=[Depends(rate_limit(STANDARD))])
def current_user(identity: Identity = Depends(authorize(require_user))) -> Any:
    return {"success": True, "user": identity.public_view()}
