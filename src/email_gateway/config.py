"""Configuration management for Email Gateway.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the EMAIL_GATEWAY_ prefix (e.g., EMAIL_GATEWAY_GOOGLE_CLIENT_ID).
    """

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_GATEWAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Configuration
    environment: str = Field(
        default="development",
        description="Deployment environment (development, production, test)",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    cors_origin: str = Field(
        default="*",
        description="Allowed CORS origin for browser clients",
    )

    # Google OAuth Configuration
    google_client_id: str = Field(
        default="",
        description="OAuth client ID issued by Google Cloud Console",
    )
    google_client_secret: str = Field(
        default="",
        description="OAuth client secret issued by Google Cloud Console",
    )
    google_callback_url: str = Field(
        default="http://localhost:3000/auth/google/callback",
        description="Redirect URI registered for the OAuth client",
    )
    google_token_uri: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="Token endpoint used to refresh access tokens",
    )
    google_scopes: list[str] = Field(
        default=[
            "openid",
            "https://www.googleapis.com/auth/userinfo.email",
            "https://www.googleapis.com/auth/userinfo.profile",
            "https://www.googleapis.com/auth/gmail.readonly",
        ],
        description="OAuth scopes requested at login. gmail.readonly is enough for listing and reading.",
    )

    # Gmail Configuration
    gmail_user_id: str = Field(
        default="me",
        description="Gmail API user id used for all mailbox calls",
    )
    gmail_fetch_concurrency: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Maximum number of concurrent message fetches per list request",
    )
    gmail_request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Deadline for one mailbox operation (list or get), in seconds",
    )
    default_max_results: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Number of messages returned when maxResults is not given",
    )

    # Session Configuration
    session_cookie_name: str = Field(
        default="email_gateway_session",
        description="Name of the cookie carrying the session token",
    )
    session_ttl_seconds: int = Field(
        default=86400,
        gt=0,
        description="Session lifetime in seconds, counted from login",
    )
    session_cookie_secure: bool = Field(
        default=False,
        description="Mark the session cookie as Secure (enable behind HTTPS)",
    )
    auth_success_path: str = Field(
        default="/auth/success",
        description="Where the OAuth callback redirects after a successful login",
    )
    auth_failure_path: str = Field(
        default="/auth/failure",
        description="Where the OAuth callback redirects after a failed login",
    )

    # Rate limiting
    rate_limit_enabled: bool = Field(
        default=True,
        description="Enforce per-IP rate limit policies",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_test(self) -> bool:
        return self.environment.lower() == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
