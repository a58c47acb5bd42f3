"""Authorization gates.

A gate is a pure decision over a `RequestContext`: it returns `ALLOW` or a
`Deny` carrying the HTTP status and message to send back. Gates are composed
with `AuthorizationChain`, which runs them left to right and stops at the
first denial, so later gates never see a request an earlier gate rejected.

Typical chains::

    AuthorizationChain(require_user, require_connected_google)
    AuthorizationChain(require_user, require_role(Role.ADMIN))
    AuthorizationChain(require_user, require_ownership_or_role("user_id", Role.ADMIN))
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import structlog

from email_gateway.models import Identity, Role

logger = structlog.get_logger()

GOOGLE_NOT_CONNECTED = "GOOGLE_NOT_CONNECTED"


@dataclass(frozen=True)
class Anonymous:
    """The caller of a request without a valid session."""


ANONYMOUS = Anonymous()

Caller = Union[Identity, Anonymous]


@dataclass(frozen=True)
class RequestContext:
    """What a gate may look at when deciding."""

    method: str
    path: str
    caller: Caller
    path_params: Mapping[str, str] = field(default_factory=dict)

    @property
    def caller_email(self) -> str:
        if isinstance(self.caller, Identity):
            return self.caller.email
        return "unknown"


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class Deny:
    status: int
    message: str
    code: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "message": self.message}
        if self.code:
            body["code"] = self.code
        return body


ALLOW = Allow()

Decision = Union[Allow, Deny]
Gate = Callable[[RequestContext], Decision]

AUTH_REQUIRED = Deny(401, "Authentication required")
INSUFFICIENT_PERMISSIONS = Deny(403, "Insufficient permissions")
ACCESS_DENIED = Deny(403, "Access denied")
INVALID_REQUEST = Deny(400, "Invalid request")
GOOGLE_CONNECTION_REQUIRED = Deny(
    403,
    "Google account connection required. "
    "Please connect your Google account to access Gmail features.",
    code=GOOGLE_NOT_CONNECTED,
)


def _chain_misuse(gate: str, ctx: RequestContext) -> Deny:
    logger.error(
        "gate_called_without_user",
        gate=gate,
        hint="require_user must run first",
        method=ctx.method,
        path=ctx.path,
    )
    return AUTH_REQUIRED


def require_user(ctx: RequestContext) -> Decision:
    """Deny unauthenticated callers with 401."""

    if not isinstance(ctx.caller, Identity):
        logger.warning(
            "authentication_required",
            email=ctx.caller_email,
            method=ctx.method,
            path=ctx.path,
        )
        return AUTH_REQUIRED

    logger.debug("authenticated_request", email=ctx.caller.email, method=ctx.method, path=ctx.path)
    return ALLOW


def require_role(*roles: Role) -> Gate:
    """Build a gate allowing callers holding at least one of ``roles``."""

    required = frozenset(roles)

    def gate(ctx: RequestContext) -> Decision:
        caller = ctx.caller
        if not isinstance(caller, Identity):
            return _chain_misuse("require_role", ctx)

        if not caller.has_any_role(required):
            logger.warning(
                "authorization_denied",
                email=caller.email,
                method=ctx.method,
                path=ctx.path,
                required_roles=sorted(r.value for r in required),
            )
            return INSUFFICIENT_PERMISSIONS

        logger.debug(
            "authorization_granted",
            email=caller.email,
            method=ctx.method,
            path=ctx.path,
            condition="role",
        )
        return ALLOW

    return gate


def require_ownership_or_role(param_name: str, *roles: Role) -> Gate:
    """Build a gate allowing the resource owner or holders of ``roles``.

    Args:
        param_name: Path parameter holding the owning identity id.
        roles: Roles that bypass the ownership check (typically ADMIN).
    """

    bypass = frozenset(roles)

    def gate(ctx: RequestContext) -> Decision:
        caller = ctx.caller
        if not isinstance(caller, Identity):
            return _chain_misuse("require_ownership_or_role", ctx)

        resource_id = ctx.path_params.get(param_name)
        if not resource_id:
            logger.warning(
                "authorization_param_missing",
                email=caller.email,
                method=ctx.method,
                path=ctx.path,
                param=param_name,
            )
            return INVALID_REQUEST

        is_owner = caller.id == resource_id
        if is_owner or caller.has_any_role(bypass):
            logger.debug(
                "authorization_granted",
                email=caller.email,
                method=ctx.method,
                path=ctx.path,
                condition="ownership" if is_owner else "role",
            )
            return ALLOW

        logger.warning(
            "authorization_denied",
            email=caller.email,
            method=ctx.method,
            path=ctx.path,
            resource=resource_id,
        )
        return ACCESS_DENIED

    return gate


def require_connected_google(ctx: RequestContext) -> Decision:
    """Deny callers without a stored Google access token."""

    caller = ctx.caller
    if not isinstance(caller, Identity):
        return _chain_misuse("require_connected_google", ctx)

    if not caller.has_google_connection:
        logger.warning(
            "google_connection_required",
            email=caller.email,
            method=ctx.method,
            path=ctx.path,
        )
        return GOOGLE_CONNECTION_REQUIRED

    logger.debug("google_connection_verified", email=caller.email, method=ctx.method, path=ctx.path)
    return ALLOW


class AuthorizationChain:
    """Ordered composition of gates; the first denial wins."""

    def __init__(self, *gates: Gate) -> None:
        self.gates: tuple[Gate, ...] = gates

    def evaluate(self, ctx: RequestContext) -> Decision:
        for gate in self.gates:
            decision = gate(ctx)
            if isinstance(decision, Deny):
                return decision
        return ALLOW
