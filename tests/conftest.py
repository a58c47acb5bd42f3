"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import base64
import threading
import time
from collections.abc import Callable
from typing import Any

import pytest


def encode_body(text: str) -> str:
    """Encode text the way Gmail encodes body data (base64url, unpadded)."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


class _Request:
    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn

    def execute(self) -> Any:
        return self._fn()


class FakeGmailService:
    """In-memory stand-in for ``build("gmail", "v1")``.

    Supports ``users().messages().list(...)`` with paging and ``is:read`` /
    ``is:unread`` queries, and ``users().messages().get(...)``. Per-message
    delays and errors can be configured; calls are recorded.
    """

    def __init__(
        self,
        messages: list[dict[str, Any]] | None = None,
        *,
        page_size: int | None = None,
        list_error: BaseException | None = None,
        get_errors: dict[str, BaseException] | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self._messages = list(messages or [])
        self.page_size = page_size
        self.list_error = list_error
        self.get_errors = dict(get_errors or {})
        self.delays = dict(delays or {})

        self.list_calls: list[dict[str, Any]] = []
        self.get_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def users(self) -> "FakeGmailService":
        return self

    def messages(self) -> "FakeGmailService":
        return self

    def list(self, **kwargs: Any) -> _Request:
        return _Request(lambda: self._list(**kwargs))

    def get(self, **kwargs: Any) -> _Request:
        return _Request(lambda: self._get(**kwargs))

    def _matching(self, query: str | None) -> list[dict[str, Any]]:
        found = self._messages
        clauses = (query or "").split()
        if "is:unread" in clauses:
            found = [m for m in found if "UNREAD" in m.get("labelIds", [])]
        if "is:read" in clauses:
            found = [m for m in found if "UNREAD" not in m.get("labelIds", [])]
        return found

    def _list(self, *, userId: str, maxResults: int, q: str | None = None, pageToken: str | None = None) -> dict[str, Any]:
        with self._lock:
            self.list_calls.append({"userId": userId, "maxResults": maxResults, "q": q, "pageToken": pageToken})
        if self.list_error is not None:
            raise self.list_error

        found = self._matching(q)
        start = int(pageToken or 0)
        size = min(maxResults, self.page_size or maxResults)
        page = found[start : start + size]
        response: dict[str, Any] = {}
        if page:
            response["messages"] = [{"id": m["id"], "threadId": m.get("threadId", "")} for m in page]
        if start + size < len(found):
            response["nextPageToken"] = str(start + size)
        return response

    def _get(self, *, userId: str, id: str, format: str) -> dict[str, Any]:
        with self._lock:
            self.get_calls.append(id)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(id)
            if delay:
                time.sleep(delay)
            if id in self.get_errors:
                raise self.get_errors[id]
            for m in self._messages:
                if m["id"] == id:
                    return m
            raise Exception("Requested entity was not found. Not Found")
        finally:
            with self._lock:
                self.in_flight -= 1


def make_message(
    message_id: str,
    *,
    subject: str = "Hello",
    sender: str = "Alice <alice@example.com>",
    to: str | None = "bob@example.com",
    date: str | None = "Mon, 06 Jan 2025 10:00:00 +0000",
    body: str = "Hi Bob",
    unread: bool = False,
    labels: list[str] | None = None,
) -> dict[str, Any]:
    """Build a Gmail API message (format=full) with a plain text body."""

    headers = [{"name": "Subject", "value": subject}, {"name": "From", "value": sender}]
    if to is not None:
        headers.append({"name": "To", "value": to})
    if date is not None:
        headers.append({"name": "Date", "value": date})

    label_ids = list(labels or ["INBOX"])
    if unread:
        label_ids.append("UNREAD")

    return {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "labelIds": label_ids,
        "snippet": body[:40],
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": headers,
            "body": {"size": 0},
            "parts": [
                {"mimeType": "text/plain", "body": {"data": encode_body(body)}},
                {"mimeType": "text/html", "body": {"data": encode_body(f"<p>{body}</p>")}},
            ],
        },
    }


class FakeGoogleOAuth:
    """Stand-in for `GoogleOAuth` that never talks to Google."""

    def __init__(self, login: Any = None, error: BaseException | None = None) -> None:
        from email_gateway.auth.oauth import GoogleLogin

        self.login = login or GoogleLogin(
            email="New.User@Example.com",
            name="New User",
            access_token="access-from-google",
            refresh_token="refresh-from-google",
        )
        self.error = error
        self.exchanges: list[tuple[str, str]] = []

    def authorization_url(self) -> tuple[str, str]:
        return "https://accounts.google.com/o/oauth2/auth?state=state-123", "state-123"

    async def exchange(self, code: str, state: str) -> Any:
        self.exchanges.append((code, state))
        if self.error is not None:
            raise self.error
        return self.login


@pytest.fixture
def settings():
    """Provide test settings."""
    from email_gateway.config import Settings

    return Settings(
        environment="test",
        log_level="DEBUG",
        google_client_id="test-client-id",
        google_client_secret="test-client-secret",
        gmail_request_timeout_seconds=5.0,
        rate_limit_enabled=False,
    )


@pytest.fixture
def identities():
    from email_gateway.auth.identities import InMemoryIdentityStore

    return InMemoryIdentityStore()


@pytest.fixture
def sessions():
    from email_gateway.auth.sessions import InMemorySessionStore

    return InMemorySessionStore()


@pytest.fixture
def user(identities):
    """A regular user with a connected Google account."""
    from email_gateway.models import Identity

    return identities.add(
        Identity(
            id="user-1",
            email="bob@example.com",
            name="Bob",
            google_access_token="access-token",
            google_refresh_token="refresh-token",
        )
    )


@pytest.fixture
def admin(identities):
    from email_gateway.models import Identity, Role

    return identities.add(
        Identity(
            id="admin-1",
            email="admin@example.com",
            name="Admin",
            roles=frozenset({Role.USER, Role.ADMIN}),
            google_access_token="admin-access-token",
        )
    )


@pytest.fixture
def unconnected_user(identities):
    """A user who never connected Google."""
    from email_gateway.models import Identity

    return identities.add(Identity(id="user-2", email="carol@example.com", name="Carol"))


@pytest.fixture
def sample_messages() -> list[dict[str, Any]]:
    return [
        make_message("m1", subject="First", unread=True),
        make_message("m2", subject="Second"),
        make_message("m3", subject="Third", unread=True),
    ]


@pytest.fixture
def gmail_service(sample_messages) -> FakeGmailService:
    return FakeGmailService(sample_messages)


@pytest.fixture
def fake_oauth() -> FakeGoogleOAuth:
    return FakeGoogleOAuth()


@pytest.fixture
def make_app(settings, identities, sessions, gmail_service, fake_oauth):
    """Factory building the app around the shared fixtures.

    Keyword arguments override `create_app` collaborators.
    """
    from email_gateway.app import create_app
    from email_gateway.mailbox import MailboxClient
    from email_gateway.ratelimit import RateGate

    def factory(**overrides: Any):
        service = overrides.pop("gmail_service", gmail_service)
        app_settings = overrides.pop("settings", settings)
        kwargs: dict[str, Any] = {
            "identities": identities,
            "sessions": sessions,
            "mailbox": MailboxClient(
                app_settings,
                identities=identities,
                service_factory=lambda _creds: service,
            ),
            "oauth": fake_oauth,
            "rate_gate": RateGate(enabled=False),
        }
        kwargs.update(overrides)
        return create_app(app_settings, **kwargs)

    return factory


@pytest.fixture
def client(make_app):
    from fastapi.testclient import TestClient

    with TestClient(make_app(), raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def login(client, sessions, settings):
    """Return a function that signs the test client in as an identity."""

    def _login(identity) -> str:
        token = sessions.create(identity.id)
        client.cookies.set(settings.session_cookie_name, token)
        return token

    return _login


@pytest.fixture
def gmail_message() -> Callable[..., dict[str, Any]]:
    """Factory for Gmail API messages, see `make_message`."""
    return make_message


@pytest.fixture
def fake_gmail() -> type[FakeGmailService]:
    """The fake Gmail service class, for tests that need custom behaviour."""
    return FakeGmailService
