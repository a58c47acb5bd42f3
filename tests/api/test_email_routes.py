"""API tests for the email routes."""

from fastapi.testclient import TestClient
from google.auth.exceptions import RefreshError
from structlog.testing import capture_logs


class TestListEmails:
    """Test suite for GET /api/emails."""

    def test_requires_session(self, client) -> None:
        response = client.get("/api/emails")

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Authentication required"}

    def test_requires_google_connection(self, client, login, unconnected_user) -> None:
        login(unconnected_user)

        with capture_logs() as logs:
            response = client.get("/api/emails")

        assert response.status_code == 403
        assert response.json()["code"] == "GOOGLE_NOT_CONNECTED"
        assert any(
            e["event"] == "google_connection_required" and e["email"] == "carol@example.com" for e in logs
        )

    def test_lists_unread_emails(self, client, login, user, gmail_service) -> None:
        login(user)

        response = client.get("/api/emails", params={"isRead": "false"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["count"] == 2
        assert data["filters"] == {"isRead": False}
        assert [e["id"] for e in data["emails"]] == ["m1", "m3"]
        assert all(e["isRead"] is False for e in data["emails"])
        assert gmail_service.list_calls[0]["q"] == "is:unread"

    def test_email_wire_format(self, client, login, user) -> None:
        login(user)

        email = client.get("/api/emails").json()["emails"][1]

        assert email == {
            "id": "m2",
            "threadId": "thread-m2",
            "subject": "Second",
            "from": "Alice <alice@example.com>",
            "to": ["bob@example.com"],
            "date": "2025-01-06T10:00:00Z",
            "snippet": "Hi Bob",
            "body": "Hi Bob",
            "isRead": True,
            "labels": ["INBOX"],
        }

    def test_empty_mailbox(self, make_app, sessions, settings, user, fake_gmail) -> None:
        client = TestClient(make_app(gmail_service=fake_gmail([])))
        client.cookies.set(settings.session_cookie_name, sessions.create(user.id))

        response = client.get("/api/emails", params={"maxResults": "5"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "count": 0,
            "filters": {"maxResults": 5},
            "emails": [],
        }

    def test_invalid_filters(self, client, login, user, gmail_service) -> None:
        login(user)

        response = client.get("/api/emails", params={"timeRange": "years", "timeValue": "1"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid timeRange. Must be one of: hours, days, weeks, months"}
        assert gmail_service.list_calls == []

    def test_incomplete_time_window(self, client, login, user) -> None:
        login(user)

        response = client.get("/api/emails", params={"timeRange": "days"})

        assert response.status_code == 400
        assert response.json() == {"error": "timeValue is required when timeRange is specified"}

    def test_expired_google_grant(self, client, login, user, gmail_service) -> None:
        gmail_service.list_error = RefreshError("invalid_grant: Token has been expired or revoked.")
        login(user)

        response = client.get("/api/emails")

        assert response.status_code == 401
        assert response.json() == {
            "error": "Google authentication expired. Please re-authenticate.",
            "code": "AUTH_EXPIRED",
        }

    def test_gmail_failure(self, client, login, user, gmail_service) -> None:
        gmail_service.list_error = RuntimeError("backend unavailable")
        login(user)

        response = client.get("/api/emails")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch emails", "message": "backend unavailable"}


class TestGetEmail:
    """Test suite for GET /api/emails/{id}."""

    def test_get_email(self, client, login, user) -> None:
        login(user)

        response = client.get("/api/emails/m3")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["email"]["id"] == "m3"
        assert data["email"]["subject"] == "Third"

    def test_missing_email(self, client, login, user, gmail_service) -> None:
        gmail_service.get_errors["123"] = Exception("Not Found")
        login(user)

        response = client.get("/api/emails/123")

        assert response.status_code == 404
        assert response.json() == {"error": "Email not found", "message": "Not Found"}

    def test_invalid_grant_on_get(self, client, login, user, gmail_service) -> None:
        gmail_service.get_errors["m1"] = Exception("invalid_grant")
        login(user)

        response = client.get("/api/emails/m1")

        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_EXPIRED"

    def test_timeout(self, make_app, settings, sessions, user, gmail_service) -> None:
        impatient = settings.model_copy(update={"gmail_request_timeout_seconds": 0.05})
        gmail_service.delays["m1"] = 0.5
        client = TestClient(make_app(settings=impatient))
        client.cookies.set(settings.session_cookie_name, sessions.create(user.id))

        response = client.get("/api/emails/m1")

        assert response.status_code == 504
        assert response.json()["error"] == "Gmail request timed out"

    def test_requires_session(self, client) -> None:
        assert client.get("/api/emails/m1").status_code == 401
