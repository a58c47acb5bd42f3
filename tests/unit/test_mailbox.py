"""Unit tests for MailboxClient."""

import asyncio
from datetime import datetime

import pytest
from google.auth.exceptions import RefreshError

from email_gateway.exceptions import AuthExpiredError, MessageNotFoundError, RemoteTimeoutError
from email_gateway.mailbox import MailboxClient
from email_gateway.models import EmailFilters, TimeRange


def _mailbox(settings, service, identities=None) -> MailboxClient:
    return MailboxClient(settings, identities=identities, service_factory=lambda _creds: service)


class TestListMessages:
    """Test suite for MailboxClient.list_messages."""

    @pytest.mark.asyncio
    async def test_lists_unread_messages(self, settings, user, gmail_service) -> None:
        mailbox = _mailbox(settings, gmail_service)

        emails = await mailbox.list_messages(user, EmailFilters(is_read=False))

        assert [e.id for e in emails] == ["m1", "m3"]
        assert all(e.is_read is False for e in emails)
        assert gmail_service.list_calls[0]["q"] == "is:unread"

    @pytest.mark.asyncio
    async def test_default_max_results(self, settings, user, gmail_service) -> None:
        await _mailbox(settings, gmail_service).list_messages(user, EmailFilters())

        call = gmail_service.list_calls[0]
        assert call["maxResults"] == 50
        assert call["q"] is None

    @pytest.mark.asyncio
    async def test_time_window_query(self, settings, user, gmail_service) -> None:
        filters = EmailFilters(time_range=TimeRange.DAYS, time_value=2, max_results=10)

        await _mailbox(settings, gmail_service).list_messages(
            user, filters, now=datetime(2025, 1, 10, 8, 0)
        )

        assert gmail_service.list_calls[0]["q"] == "after:2025/01/08"
        assert gmail_service.list_calls[0]["maxResults"] == 10

    @pytest.mark.asyncio
    async def test_empty_result(self, settings, user, fake_gmail) -> None:
        service = fake_gmail([])

        emails = await _mailbox(settings, service).list_messages(user, EmailFilters())

        assert emails == []
        assert service.get_calls == []

    @pytest.mark.asyncio
    async def test_order_preserved_when_fetches_finish_out_of_order(
        self, settings, user, gmail_message, fake_gmail
    ) -> None:
        """Test that results follow list order, not completion order."""
        service = fake_gmail(
            [gmail_message("slow"), gmail_message("medium"), gmail_message("fast")],
            delays={"slow": 0.2, "medium": 0.1},
        )

        emails = await _mailbox(settings, service).list_messages(user, EmailFilters())

        assert [e.id for e in emails] == ["slow", "medium", "fast"]

    @pytest.mark.asyncio
    async def test_fetch_concurrency_is_bounded(self, settings, user, gmail_message, fake_gmail) -> None:
        bounded = settings.model_copy(update={"gmail_fetch_concurrency": 2})
        messages = [gmail_message(f"m{i}") for i in range(6)]
        service = fake_gmail(messages, delays={m["id"]: 0.05 for m in messages})

        emails = await _mailbox(bounded, service).list_messages(user, EmailFilters())

        assert len(emails) == 6
        assert service.max_in_flight <= 2

    @pytest.mark.asyncio
    async def test_one_failed_fetch_fails_the_list(self, settings, user, gmail_service) -> None:
        gmail_service.get_errors["m3"] = RefreshError("invalid_grant: Token has been expired or revoked.")

        with pytest.raises(AuthExpiredError):
            await _mailbox(settings, gmail_service).list_messages(user, EmailFilters())

    @pytest.mark.asyncio
    async def test_failed_fetch_stops_remaining_fetches(self, settings, user, gmail_message, fake_gmail) -> None:
        serial = settings.model_copy(update={"gmail_fetch_concurrency": 1})
        service = fake_gmail(
            [gmail_message(f"m{i}") for i in range(10)],
            get_errors={"m0": RefreshError("invalid_grant: Token has been expired or revoked.")},
        )

        with pytest.raises(AuthExpiredError):
            await _mailbox(serial, service).list_messages(user, EmailFilters())
        await asyncio.sleep(0.1)

        assert len(service.get_calls) <= 2

    @pytest.mark.asyncio
    async def test_deadline(self, settings, user, gmail_service) -> None:
        impatient = settings.model_copy(update={"gmail_request_timeout_seconds": 0.05})
        gmail_service.delays["m1"] = 0.5

        with pytest.raises(RemoteTimeoutError):
            await _mailbox(impatient, gmail_service).list_messages(user, EmailFilters())


class TestGetMessage:
    """Test suite for MailboxClient.get_message."""

    @pytest.mark.asyncio
    async def test_get_message(self, settings, user, gmail_service) -> None:
        email = await _mailbox(settings, gmail_service).get_message(user, "m2")

        assert email.id == "m2"
        assert email.subject == "Second"
        assert email.body == "Hi Bob"

    @pytest.mark.asyncio
    async def test_get_missing_message(self, settings, user, gmail_service) -> None:
        with pytest.raises(MessageNotFoundError):
            await _mailbox(settings, gmail_service).get_message(user, "nope")


class TestTokenWriteBack:
    """Test suite for storing refreshed Google tokens."""

    @pytest.mark.asyncio
    async def test_refreshed_token_is_stored(self, settings, user, identities, gmail_service) -> None:
        def factory(creds):
            # Simulates google-auth refreshing the access token mid-request.
            creds.token = "refreshed-token"
            return gmail_service

        mailbox = MailboxClient(settings, identities=identities, service_factory=factory)

        await mailbox.get_message(user, "m1")

        stored = identities.get(user.id)
        assert stored.google_access_token == "refreshed-token"
        assert stored.google_refresh_token == "refresh-token"

    @pytest.mark.asyncio
    async def test_unchanged_token_is_not_rewritten(self, settings, user, identities, gmail_service) -> None:
        mailbox = _mailbox(settings, gmail_service, identities)

        await mailbox.get_message(user, "m1")

        assert identities.get(user.id) is user
