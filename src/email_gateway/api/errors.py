"""HTTP error rendering.

Authorization and rate limit denials are raised from dependencies as the
exceptions below and rendered here, together with schema validation errors,
unknown routes and unhandled failures.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from email_gateway.auth.gates import Deny
from email_gateway.ratelimit import RateDecision, RateLimitPolicy

logger = structlog.get_logger()

GENERIC_ERROR_MESSAGE = "Something went wrong"


class AuthorizationDenied(Exception):
    """Raised when an authorization chain denies a request."""

    def __init__(self, decision: Deny) -> None:
        super().__init__(decision.message)
        self.decision = decision


class RateLimitExceeded(Exception):
    """Raised when a request exceeds a rate limit policy."""

    def __init__(self, policy: RateLimitPolicy, decision: RateDecision) -> None:
        super().__init__(policy.message)
        self.policy = policy
        self.decision = decision


def _is_production(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    return bool(settings and settings.is_production)


def public_message(request: Request, message: str) -> str:
    """Pass error text through, except in production."""
    return GENERIC_ERROR_MESSAGE if _is_production(request) else message


async def _authorization_denied(request: Request, exc: AuthorizationDenied) -> JSONResponse:
    return JSONResponse(status_code=exc.decision.status, content=exc.decision.to_response())


async def _rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = exc.decision.retry_after
    return JSONResponse(
        status_code=429,
        content={"success": False, "message": exc.policy.message, "retryAfter": retry_after},
        headers={
            "Retry-After": str(retry_after),
            "RateLimit-Limit": str(exc.policy.max_requests),
            "RateLimit-Remaining": "0",
        },
    )


async def _validation_failed(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: list[dict[str, Any]] = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ())]
        # Drop the request part ("body", "query", ...) from the field path.
        field = ".".join(loc[1:]) if len(loc) > 1 else ".".join(loc)
        errors.append({"field": field, "message": err.get("msg", "")})

    logger.warning(
        "validation_failed",
        method=request.method,
        path=request.url.path,
        errors=errors,
    )
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        content = {"error": "Not Found", "message": f"Cannot {request.method} {request.url.path}"}
    else:
        content = {"error": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        method=request.method,
        path=request.url.path,
        error=str(exc),
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "message": public_message(request, str(exc))},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthorizationDenied, _authorization_denied)
    app.add_exception_handler(RateLimitExceeded, _rate_limited)
    app.add_exception_handler(RequestValidationError, _validation_failed)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(Exception, _unhandled)
