"""FastAPI dependencies.

Collaborators live on ``app.state`` (see `email_gateway.app.create_app`) and
are handed to routes through these functions, so tests can swap any of them.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from fastapi import Depends, Request

from email_gateway.api.errors import AuthorizationDenied, RateLimitExceeded
from email_gateway.auth.gates import (
    AUTH_REQUIRED,
    AuthorizationChain,
    Caller,
    Deny,
    Gate,
    RequestContext,
)
from email_gateway.auth.identities import IdentityStore
from email_gateway.auth.oauth import GoogleOAuth
from email_gateway.auth.sessions import SessionStore, caller_from_session
from email_gateway.config import Settings
from email_gateway.mailbox import MailboxClient
from email_gateway.models import Identity
from email_gateway.ratelimit import RateGate, RateLimitPolicy

logger = structlog.get_logger()

UNKNOWN_CLIENT = "unknown"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_identities(request: Request) -> IdentityStore:
    return request.app.state.identities


def get_sessions(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_mailbox(request: Request) -> MailboxClient:
    return request.app.state.mailbox


def get_oauth(request: Request) -> GoogleOAuth:
    return request.app.state.oauth


def get_rate_gate(request: Request) -> RateGate:
    return request.app.state.rate_gate


def client_key(request: Request) -> str:
    """Rate limit key for the request: the client IP, if known."""
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def get_caller(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    sessions: SessionStore = Depends(get_sessions),
    identities: IdentityStore = Depends(get_identities),
) -> Caller:
    token = request.cookies.get(settings.session_cookie_name)
    return caller_from_session(token, sessions, identities)


def rate_limit(policy: RateLimitPolicy) -> Callable[..., None]:
    """Dependency enforcing ``policy`` for the route it is attached to."""

    def dependency(request: Request, gate: RateGate = Depends(get_rate_gate)) -> None:
        key = client_key(request)
        decision = gate.check(policy, key)
        if decision.allowed:
            return
        logger.warning(
            "rate_limit_exceeded",
            ip=key,
            policy=policy.name,
            method=request.method,
            path=request.url.path,
            user_agent=request.headers.get("user-agent"),
        )
        raise RateLimitExceeded(policy, decision)

    dependency.__name__ = f"rate_limit_{policy.name}"
    return dependency


def authorize(*gates: Gate) -> Callable[..., Identity]:
    """Dependency running ``gates`` in order and returning the caller.

    The chain must begin with `require_user`; routes behind it always receive
    an `Identity`.
    """

    chain = AuthorizationChain(*gates)

    def dependency(request: Request, caller: Caller = Depends(get_caller)) -> Identity:
        ctx = RequestContext(
            method=request.method,
            path=request.url.path,
            caller=caller,
            path_params=dict(request.path_params),
        )
        decision = chain.evaluate(ctx)
        if isinstance(decision, Deny):
            raise AuthorizationDenied(decision)
        if not isinstance(caller, Identity):
            raise AuthorizationDenied(AUTH_REQUIRED)
        return caller

    return dependency
