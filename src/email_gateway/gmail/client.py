"""Gmail API client implementation.

This module provides a per-user client for the Gmail API, built from the
OAuth token pair stored on an identity.

Notes:
    The Google API client is synchronous. Calls are wrapped with
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
    The underlying httplib2 transport is not thread-safe, so each worker
    thread builds its own service object.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from functools import partial
from typing import Any

import structlog
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.errors import HttpError

from email_gateway.config import Settings
from email_gateway.exceptions import AuthExpiredError, GmailAPIError, MessageNotFoundError
from email_gateway.models import Identity

logger = structlog.get_logger()

ServiceFactory = Callable[[Credentials], Any]

# Substrings Google puts in errors for revoked or expired grants, and for
# missing messages. Used only when no structured status is available.
_AUTH_EXPIRED_MARKERS = ("invalid_grant", "Token")
_NOT_FOUND_MARKERS = ("Not Found", "404")


def credentials_for(identity: Identity, settings: Settings) -> Credentials:
    """Build Google credentials from an identity's stored token pair."""

    return Credentials(
        token=identity.google_access_token,
        refresh_token=identity.google_refresh_token,
        token_uri=settings.google_token_uri,
        client_id=settings.google_client_id or None,
        client_secret=settings.google_client_secret or None,
    )


def _http_status(exc: HttpError) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None and getattr(exc, "resp", None) is not None:
        status = getattr(exc.resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def classify_gmail_error(exc: BaseException) -> GmailAPIError:
    """Map a Google client failure onto the gateway's error types.

    Structured signals (``RefreshError``, ``HttpError`` status) are used first;
    otherwise the error text is matched against known markers.
    """

    if isinstance(exc, GmailAPIError):
        return exc

    message = str(exc)
    if isinstance(exc, RefreshError):
        return AuthExpiredError(message)
    if isinstance(exc, HttpError):
        status = _http_status(exc)
        if status == 401:
            return AuthExpiredError(message)
        if status == 404:
            return MessageNotFoundError(message)
        if status is not None:
            return GmailAPIError(message)

    if any(marker in message for marker in _AUTH_EXPIRED_MARKERS):
        return AuthExpiredError(message)
    if any(marker in message for marker in _NOT_FOUND_MARKERS):
        return MessageNotFoundError(message)
    return GmailAPIError(message)


def _build_service(credentials: Credentials, timeout: float | None = None) -> Any:
    # Imported lazily to keep import-time cost low and tests fast.
    import httplib2
    from google_auth_httplib2 import AuthorizedHttp
    from googleapiclient.discovery import build

    # Socket timeout matches the operation deadline.
    http = AuthorizedHttp(credentials, http=httplib2.Http(timeout=timeout))

    # cache_discovery=False prevents writing discovery docs to disk.
    return build("gmail", "v1", http=http, cache_discovery=False)


class GmailClient:
    """Gmail API client for one user's mailbox.

    This client handles message listing and retrieval on behalf of the
    identity whose credentials it was built with.
    """

    def __init__(
        self,
        credentials: Credentials,
        settings: Settings | None = None,
        service_factory: ServiceFactory | None = None,
    ) -> None:
        """Initialize Gmail client.

        Args:
            credentials: OAuth credentials for the mailbox owner.
            settings: Application settings. If None, uses default settings.
            service_factory: Builds a Gmail service from credentials. Defaults
                to the discovery-based Google API client.
        """
        from email_gateway.config import get_settings

        self.settings = settings or get_settings()
        self.credentials = credentials
        self._service_factory = service_factory or partial(
            _build_service, timeout=self.settings.gmail_request_timeout_seconds
        )
        self._local = threading.local()

    @classmethod
    def for_identity(
        cls,
        identity: Identity,
        settings: Settings,
        service_factory: ServiceFactory | None = None,
    ) -> "GmailClient":
        return cls(credentials_for(identity, settings), settings, service_factory)

    async def list_messages(
        self,
        max_results: int,
        query: str | None = None,
    ) -> list[dict[str, Any]]:
        """List messages from Gmail.

        Args:
            max_results: Maximum number of messages to return.
            query: Gmail search query string.

        Returns:
            List of message reference dictionaries (``id``, ``threadId``).

        Raises:
            GmailAPIError: If the API request fails (or a subclass of it).
        """

        logger.debug("listing_messages", max_results=max_results, query=query)

        try:
            return await asyncio.to_thread(self._list_messages_sync, max_results, query)
        except Exception as exc:  # noqa: BLE001
            error = classify_gmail_error(exc)
            logger.warning(
                "gmail_list_messages_failed",
                error=str(exc),
                error_type=type(error).__name__,
            )
            raise error from exc

    async def get_message(
        self,
        message_id: str,
        *,
        format: str = "full",
    ) -> dict[str, Any]:
        """Get a specific message by ID.

        Args:
            message_id: The Gmail message ID.
            format: Gmail response format.

        Returns:
            Message data dictionary.

        Raises:
            GmailAPIError: If the API request fails (or a subclass of it).
        """

        logger.debug("getting_message", message_id=message_id, format=format)

        try:
            return await asyncio.to_thread(self._get_message_sync, message_id, format)
        except Exception as exc:  # noqa: BLE001
            error = classify_gmail_error(exc)
            logger.warning(
                "gmail_get_message_failed",
                message_id=message_id,
                error=str(exc),
                error_type=type(error).__name__,
            )
            raise error from exc

    def _service(self) -> Any:
        service = getattr(self._local, "service", None)
        if service is None:
            service = self._service_factory(self.credentials)
            self._local.service = service
        return service

    def _list_messages_sync(self, max_results: int, query: str | None) -> list[dict[str, Any]]:
        service = self._service()
        user_id = self.settings.gmail_user_id
        messages: list[dict[str, Any]] = []

        page_token: str | None = None
        while len(messages) < max_results:
            per_page = min(500, max_results - len(messages))
            request = (
                service.users()
                .messages()
                .list(userId=user_id, maxResults=per_page, q=query, pageToken=page_token)
            )
            response = request.execute()
            messages.extend(response.get("messages", []) or [])
            page_token = response.get("nextPageToken")
            if page_token is None:
                break

        return messages[:max_results]

    def _get_message_sync(self, message_id: str, format: str) -> dict[str, Any]:
        service = self._service()
        request = (
            service.users()
            .messages()
            .get(userId=self.settings.gmail_user_id, id=message_id, format=format)
        )
        return request.execute()
