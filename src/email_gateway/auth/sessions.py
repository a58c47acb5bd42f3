"""Server-side sessions mapping an opaque cookie token to an identity id."""

from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional, Protocol

import structlog

from email_gateway.auth.gates import ANONYMOUS, Caller
from email_gateway.auth.identities import IdentityStore

logger = structlog.get_logger()

DEFAULT_SESSION_TTL_SECONDS = 24 * 60 * 60


class SessionStore(Protocol):
    def create(self, identity_id: str) -> str: ...

    def resolve(self, token: str) -> Optional[str]: ...

    def destroy(self, token: str) -> None: ...


@dataclass(frozen=True)
class _Session:
    identity_id: str
    expires_at: float


class InMemorySessionStore:
    """Process-local session store with a fixed TTL counted from creation."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, _Session] = {}

    def create(self, identity_id: str) -> str:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._sessions[token] = _Session(identity_id, self._clock() + self._ttl)
        return token

    def resolve(self, token: str) -> Optional[str]:
        now = self._clock()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if now >= session.expires_at:
                del self._sessions[token]
                return None
            return session.identity_id

    def destroy(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [t for t, s in self._sessions.items() if now >= s.expires_at]
            for token in expired:
                del self._sessions[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def caller_from_session(
    token: Optional[str],
    sessions: SessionStore,
    identities: IdentityStore,
) -> Caller:
    """Resolve the caller behind a session token.

    Unknown or expired tokens, and sessions whose identity no longer exists,
    all resolve to ANONYMOUS.
    """

    if not token:
        return ANONYMOUS
    identity_id = sessions.resolve(token)
    if identity_id is None:
        return ANONYMOUS
    identity = identities.get(identity_id)
    if identity is None:
        logger.warning("session_identity_missing", identity_id=identity_id)
        sessions.destroy(token)
        return ANONYMOUS
    return identity
