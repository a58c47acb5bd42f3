"""Google OAuth login exchange.

The protocol work (consent URL, code exchange, token issuance) is delegated to
`google-auth-oauthlib`. This module only turns the result into the email,
display name and token pair the identity store needs.

Notes:
    The Google client libraries are synchronous. The code exchange runs via
    `asyncio.to_thread` so request handlers stay async.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from email_gateway.config import Settings
from email_gateway.exceptions import AuthenticationError, ConfigurationError

logger = structlog.get_logger()

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"


@dataclass(frozen=True)
class GoogleLogin:
    """Outcome of a successful OAuth code exchange."""

    email: str
    name: str
    access_token: str
    refresh_token: Optional[str] = field(default=None, repr=False)


def display_name(profile: dict[str, Any], email: str) -> str:
    """Pick a display name from a Google userinfo profile.

    Falls back to given + family name, then to the local part of the email.
    """

    name = (profile.get("name") or "").strip()
    if not name:
        given = profile.get("given_name") or ""
        family = profile.get("family_name") or ""
        name = f"{given} {family}".strip()
    return name or email.split("@", 1)[0]


class GoogleOAuth:
    """Builds consent URLs and exchanges authorization codes."""

    def __init__(self, settings: Settings | None = None) -> None:
        from email_gateway.config import get_settings

        self.settings = settings or get_settings()
        if not self.settings.google_client_id or not self.settings.google_client_secret:
            logger.warning(
                "google_oauth_not_configured",
                hint="set EMAIL_GATEWAY_GOOGLE_CLIENT_ID and EMAIL_GATEWAY_GOOGLE_CLIENT_SECRET",
            )

    def authorization_url(self) -> tuple[str, str]:
        """Return the Google consent URL and the CSRF state bound to it."""

        self._ensure_configured()
        flow = self._flow()
        url, state = flow.authorization_url(
            access_type="offline",
            prompt="consent",
        )
        return url, state

    async def exchange(self, code: str, state: str) -> GoogleLogin:
        """Exchange an authorization code for tokens and the user's profile.

        Raises:
            AuthenticationError: If the exchange fails or the profile has no email.
        """

        self._ensure_configured()
        try:
            return await asyncio.to_thread(self._exchange_sync, code, state)
        except AuthenticationError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("google_oauth_exchange_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

    def _ensure_configured(self) -> None:
        if not self.settings.google_client_id or not self.settings.google_client_secret:
            raise ConfigurationError("Google OAuth client id/secret are not configured")

    def _flow(self, state: str | None = None) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google_auth_oauthlib.flow import Flow

        client_config = {
            "web": {
                "client_id": self.settings.google_client_id,
                "client_secret": self.settings.google_client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": self.settings.google_token_uri,
                "redirect_uris": [self.settings.google_callback_url],
            }
        }
        # PKCE off: the callback builds a fresh Flow with no stored verifier.
        return Flow.from_client_config(
            client_config,
            scopes=self.settings.google_scopes,
            state=state,
            redirect_uri=self.settings.google_callback_url,
            autogenerate_code_verifier=False,
        )

    def _exchange_sync(self, code: str, state: str) -> GoogleLogin:
        from googleapiclient.discovery import build

        flow = self._flow(state)
        flow.fetch_token(code=code)
        creds = flow.credentials

        service = build("oauth2", "v2", credentials=creds, cache_discovery=False)
        profile = service.userinfo().get().execute()

        email = profile.get("email")
        if not email:
            raise AuthenticationError("No email found in Google profile")

        logger.info("google_oauth_callback", email=email)
        return GoogleLogin(
            email=email,
            name=display_name(profile, email),
            access_token=creds.token,
            refresh_token=creds.refresh_token,
        )
