"""Identity storage.

Persistent user storage is an external concern. `IdentityStore` is the seam a
real backend plugs into; `InMemoryIdentityStore` is the process-local
implementation used by default and in tests.
"""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Optional, Protocol

import structlog

from email_gateway.models import Identity

logger = structlog.get_logger()


class IdentityStore(Protocol):
    """Storage operations the gateway needs for identities."""

    def get(self, identity_id: str) -> Optional[Identity]: ...

    def get_by_email(self, email: str) -> Optional[Identity]: ...

    def list(self) -> list[Identity]: ...

    def add(self, identity: Identity) -> Identity: ...

    def upsert_google_login(
        self,
        *,
        email: str,
        name: str,
        access_token: str,
        refresh_token: Optional[str],
    ) -> Identity: ...

    def update_google_tokens(
        self,
        identity_id: str,
        *,
        access_token: str,
        refresh_token: Optional[str],
    ) -> Optional[Identity]: ...

    def update_profile(
        self,
        identity_id: str,
        *,
        name: Optional[str] = None,
        time_zone: Optional[str] = None,
    ) -> Optional[Identity]: ...


class InMemoryIdentityStore:
    """Thread-safe identity store keyed by id, with a unique email index."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: dict[str, Identity] = {}
        self._id_by_email: dict[str, str] = {}

    def get(self, identity_id: str) -> Optional[Identity]:
        with self._lock:
            return self._by_id.get(identity_id)

    def get_by_email(self, email: str) -> Optional[Identity]:
        key = email.strip().lower()
        with self._lock:
            identity_id = self._id_by_email.get(key)
            return self._by_id.get(identity_id) if identity_id else None

    def list(self) -> list[Identity]:
        with self._lock:
            return sorted(self._by_id.values(), key=lambda i: i.created_at)

    def add(self, identity: Identity) -> Identity:
        """Insert a new identity.

        Raises:
            ValueError: If the id or email is already taken.
        """

        with self._lock:
            if identity.id in self._by_id:
                raise ValueError(f"identity {identity.id} already exists")
            if identity.email in self._id_by_email:
                raise ValueError(f"email {identity.email} is already registered")
            self._put(identity)
        return identity

    def upsert_google_login(
        self,
        *,
        email: str,
        name: str,
        access_token: str,
        refresh_token: Optional[str],
    ) -> Identity:
        """Create or refresh the identity behind a Google login.

        Google only returns a refresh token on first consent, so an existing
        refresh token is kept when none is supplied.
        """

        key = email.strip().lower()
        with self._lock:
            existing_id = self._id_by_email.get(key)
            if existing_id is not None:
                current = self._by_id[existing_id]
                updated = current.model_copy(
                    update={
                        "google_access_token": access_token,
                        "google_refresh_token": refresh_token or current.google_refresh_token,
                        "updated_at": datetime.now(timezone.utc),
                    }
                )
                self._put(updated)
                logger.info("identity_login_refreshed", email=updated.email)
                return updated

            created = Identity(
                id=uuid.uuid4().hex,
                email=email,
                name=name,
                google_access_token=access_token,
                google_refresh_token=refresh_token,
            )
            self._put(created)
        logger.info("identity_created", email=created.email)
        return created

    def update_google_tokens(
        self,
        identity_id: str,
        *,
        access_token: str,
        refresh_token: Optional[str],
    ) -> Optional[Identity]:
        # Tokens are opaque full replacements; last write wins.
        return self._update(
            identity_id,
            google_access_token=access_token,
            google_refresh_token=refresh_token,
        )

    def update_profile(
        self,
        identity_id: str,
        *,
        name: Optional[str] = None,
        time_zone: Optional[str] = None,
    ) -> Optional[Identity]:
        changes: dict[str, str] = {}
        if name is not None:
            changes["name"] = name.strip()
        if time_zone is not None:
            changes["time_zone"] = time_zone
        return self._update(identity_id, **changes)

    def _update(self, identity_id: str, **changes: object) -> Optional[Identity]:
        with self._lock:
            current = self._by_id.get(identity_id)
            if current is None:
                return None
            # Validators must run on the new values.
            data = current.model_dump()
            data.update(changes)
            data["updated_at"] = datetime.now(timezone.utc)
            updated = Identity.model_validate(data)
            self._put(updated)
            return updated

    def _put(self, identity: Identity) -> None:
        self._by_id[identity.id] = identity
        self._id_by_email[identity.email] = identity.id
