"""Mailbox access for authenticated identities.

`MailboxClient` ties the pieces together for one request: Google credentials
from the identity, the search query from the filters, Gmail list/get calls and
normalization of every returned message.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from datetime import datetime
from typing import TypeVar

import structlog

from email_gateway.auth.identities import IdentityStore
from email_gateway.config import Settings
from email_gateway.exceptions import RemoteTimeoutError
from email_gateway.gmail.client import GmailClient, ServiceFactory
from email_gateway.gmail.parsing import message_to_email
from email_gateway.gmail.query import build_query
from email_gateway.models import EmailFilters, EmailMessage, Identity

logger = structlog.get_logger()

T = TypeVar("T")


class MailboxClient:
    """Lists and reads Gmail messages on behalf of identities."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        identities: IdentityStore | None = None,
        service_factory: ServiceFactory | None = None,
    ) -> None:
        """Create a mailbox client.

        Args:
            settings: Application settings. If None, uses default settings.
            identities: Store receiving refreshed Google tokens. Without one,
                refreshed tokens are only used for the current request.
            service_factory: Gmail service factory, forwarded to GmailClient.
        """
        from email_gateway.config import get_settings

        self.settings = settings or get_settings()
        self.identities = identities
        self._service_factory = service_factory

    async def list_messages(
        self,
        identity: Identity,
        filters: EmailFilters,
        *,
        now: datetime | None = None,
    ) -> list[EmailMessage]:
        """Fetch and normalize the identity's messages matching ``filters``.

        Messages come back in Gmail's list order. No match yields ``[]``.

        Raises:
            AuthExpiredError: Google rejected the stored credentials.
            RemoteTimeoutError: The operation exceeded its deadline.
            GmailAPIError: Any other Gmail failure.
        """

        return await self._with_deadline(
            self._list_messages(identity, filters, now),
            operation="list_messages",
            email=identity.email,
        )

    async def get_message(self, identity: Identity, message_id: str) -> EmailMessage:
        """Fetch and normalize a single message.

        Raises:
            MessageNotFoundError: Gmail has no message with this id.
            AuthExpiredError: Google rejected the stored credentials.
            RemoteTimeoutError: The operation exceeded its deadline.
            GmailAPIError: Any other Gmail failure.
        """

        return await self._with_deadline(
            self._get_message(identity, message_id),
            operation="get_message",
            email=identity.email,
        )

    def _client_for(self, identity: Identity) -> GmailClient:
        return GmailClient.for_identity(identity, self.settings, self._service_factory)

    async def _list_messages(
        self,
        identity: Identity,
        filters: EmailFilters,
        now: datetime | None,
    ) -> list[EmailMessage]:
        gmail = self._client_for(identity)
        query = build_query(filters, now)
        max_results = filters.max_results or self.settings.default_max_results

        logger.debug("fetching_emails", email=identity.email, query=query, max_results=max_results)

        refs = await gmail.list_messages(max_results=max_results, query=query or None)
        message_ids = [r["id"] for r in refs if isinstance(r.get("id"), str) and r["id"]]

        if not message_ids:
            logger.info("no_emails_found", email=identity.email, filters=filters.to_response())
            self._store_refreshed_tokens(identity, gmail)
            return []

        semaphore = asyncio.Semaphore(self.settings.gmail_fetch_concurrency)

        async def fetch(message_id: str) -> EmailMessage:
            async with semaphore:
                raw = await gmail.get_message(message_id)
            return message_to_email(raw)

        tasks = [asyncio.ensure_future(fetch(mid)) for mid in message_ids]
        try:
            # gather() keeps input order regardless of completion order.
            emails = await asyncio.gather(*tasks)
        except BaseException:
            # One failure fails the list; nothing else may reach Gmail.
            for task in tasks:
                task.cancel()
            raise

        self._store_refreshed_tokens(identity, gmail)
        logger.info("emails_fetched", email=identity.email, count=len(emails))
        return list(emails)

    async def _get_message(self, identity: Identity, message_id: str) -> EmailMessage:
        gmail = self._client_for(identity)
        logger.debug("fetching_email", email=identity.email, message_id=message_id)

        raw = await gmail.get_message(message_id)
        email = message_to_email(raw)

        self._store_refreshed_tokens(identity, gmail)
        logger.info("email_fetched", email=identity.email, message_id=message_id)
        return email

    async def _with_deadline(self, work: Awaitable[T], *, operation: str, email: str) -> T:
        timeout = self.settings.gmail_request_timeout_seconds
        try:
            return await asyncio.wait_for(work, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("gmail_operation_timed_out", operation=operation, email=email, timeout=timeout)
            raise RemoteTimeoutError(f"Gmail {operation} exceeded {timeout:g}s") from None

    def _store_refreshed_tokens(self, identity: Identity, gmail: GmailClient) -> None:
        creds = gmail.credentials
        token = creds.token
        if not token or token == identity.google_access_token or self.identities is None:
            return

        refresh_token = creds.refresh_token or identity.google_refresh_token
        try:
            self.identities.update_google_tokens(
                identity.id,
                access_token=token,
                refresh_token=refresh_token,
            )
        except Exception as exc:  # noqa: BLE001
            # Best-effort write.
            logger.warning("google_token_store_failed", email=identity.email, error=str(exc))
            return
        logger.info("google_tokens_refreshed", email=identity.email)
