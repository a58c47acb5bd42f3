"""Authentication and authorization.

Sessions resolve a cookie to the calling identity; gates decide whether that
caller may proceed.
"""

from .gates import (
    ANONYMOUS,
    Anonymous,
    AuthorizationChain,
    Caller,
    Deny,
    RequestContext,
    require_connected_google,
    require_ownership_or_role,
    require_role,
    require_user,
)
from .identities import IdentityStore, InMemoryIdentityStore
from .sessions import InMemorySessionStore, SessionStore, caller_from_session

__all__ = [
    "ANONYMOUS",
    "Anonymous",
    "AuthorizationChain",
    "Caller",
    "Deny",
    "IdentityStore",
    "InMemoryIdentityStore",
    "InMemorySessionStore",
    "RequestContext",
    "SessionStore",
    "caller_from_session",
    "require_connected_google",
    "require_ownership_or_role",
    "require_role",
    "require_user",
]
