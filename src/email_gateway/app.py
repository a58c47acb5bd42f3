"""FastAPI application factory.

`create_app` wires settings, stores and Google clients onto ``app.state`` and
mounts the routers. Every collaborator can be passed in, which is how the
tests run the full HTTP stack against in-memory stores and fake Google
services.

Run with:
    uvicorn email_gateway.app:create_app --factory
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from email_gateway import __version__
from email_gateway.api import auth_router, emails_router, health_router, users_router
from email_gateway.api.deps import client_key, rate_limit
from email_gateway.api.errors import install_error_handlers
from email_gateway.auth.identities import IdentityStore, InMemoryIdentityStore
from email_gateway.auth.oauth import GoogleOAuth
from email_gateway.auth.sessions import InMemorySessionStore, SessionStore
from email_gateway.config import Settings, get_settings
from email_gateway.mailbox import MailboxClient
from email_gateway.ratelimit import GLOBAL, RateGate

logger = structlog.get_logger()

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
}


def create_app(
    settings: Settings | None = None,
    *,
    identities: IdentityStore | None = None,
    sessions: SessionStore | None = None,
    mailbox: MailboxClient | None = None,
    oauth: GoogleOAuth | None = None,
    rate_gate: RateGate | None = None,
) -> FastAPI:
    """Build the Email Gateway application.

    Args:
        settings: Application settings. If None, uses default settings.
        identities: Identity store. Defaults to an in-memory store.
        sessions: Session store. Defaults to an in-memory store using
            ``settings.session_ttl_seconds``.
        mailbox: Gmail access. Defaults to a `MailboxClient` writing refreshed
            tokens back to ``identities``.
        oauth: Google login. Defaults to `GoogleOAuth` built from settings.
        rate_gate: Rate limit checker. Defaults to an in-memory gate, enabled
            per ``settings.rate_limit_enabled``.

    Returns:
        FastAPI: The configured application.
    """

    settings = settings if settings is not None else get_settings()
    if identities is None:
        identities = InMemoryIdentityStore()
    if sessions is None:
        sessions = InMemorySessionStore(ttl_seconds=settings.session_ttl_seconds)
    if mailbox is None:
        mailbox = MailboxClient(settings, identities=identities)
    if oauth is None:
        oauth = GoogleOAuth(settings)
    if rate_gate is None:
        rate_gate = RateGate(enabled=settings.rate_limit_enabled)

    app = FastAPI(
        title="Email Gateway",
        version=__version__,
        debug=settings.debug,
        dependencies=[Depends(rate_limit(GLOBAL))],
    )

    app.state.settings = settings
    app.state.identities = identities
    app.state.sessions = sessions
    app.state.mailbox = mailbox
    app.state.oauth = oauth
    app.state.rate_gate = rate_gate
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=settings.cors_origin != "*",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def access_log(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)

        if not settings.is_test:
            logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
                ip=client_key(request),
                user_agent=request.headers.get("user-agent"),
            )
        return response

    install_error_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(emails_router)
    app.include_router(users_router)

    logger.info(
        "email_gateway_app_created",
        environment=settings.environment,
        rate_limit_enabled=rate_gate.enabled,
    )
    return app
