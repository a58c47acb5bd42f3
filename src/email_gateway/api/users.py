"""User profile API.

Users may read and update their own profile; admins may read and update any
profile and list all users.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from email_gateway.api.deps import authorize, get_identities, rate_limit
from email_gateway.api.models import UpdateUserRequest
from email_gateway.auth.gates import require_ownership_or_role, require_role, require_user
from email_gateway.auth.identities import IdentityStore
from email_gateway.models import Identity, Role
from email_gateway.ratelimit import STANDARD

logger = structlog.get_logger()

router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(rate_limit(STANDARD))])

require_admin = authorize(require_user, require_role(Role.ADMIN))
require_self_or_admin = authorize(require_user, require_ownership_or_role("user_id", Role.ADMIN))


def _user_not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"success": False, "message": "User not found"})


@router.get("")
def list_users(
    _: Identity = Depends(require_admin),
    identities: IdentityStore = Depends(get_identities),
) -> Any:
    users = identities.list()
    return {"success": True, "count": len(users), "users": [u.public_view() for u in users]}


@router.get("/{user_id}")
def get_user(
    user_id: str,
    _: Identity = Depends(require_self_or_admin),
    identities: IdentityStore = Depends(get_identities),
) -> Any:
    identity = identities.get(user_id)
    if identity is None:
        return _user_not_found()
    return {"success": True, "user": identity.public_view()}


@router.patch("/{user_id}")
def update_user(
    user_id: str,
    body: UpdateUserRequest,
    caller: Identity = Depends(require_self_or_admin),
    identities: IdentityStore = Depends(get_identities),
) -> Any:
    updated = identities.update_profile(user_id, name=body.name, time_zone=body.time_zone)
    if updated is None:
        return _user_not_found()

    logger.info(
        "user_profile_updated",
        email=updated.email,
        updated_by=caller.email,
        fields=sorted(body.model_dump(exclude_none=True)),
    )
    return {"success": True, "user": updated.public_view()}
