"""Data models for Email Gateway.

This module contains Pydantic models for data validation and serialization.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .email_message import EmailMessage

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Closed set of roles an identity can hold."""

    USER = "USER"
    ADMIN = "ADMIN"


class TimeRange(str, Enum):
    """Units accepted by the time-window filter."""

    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"

    @property
    def seconds(self) -> int:
        # Months are a fixed 30 days, not calendar months.
        return {
            TimeRange.HOURS: 3600,
            TimeRange.DAYS: 86400,
            TimeRange.WEEKS: 7 * 86400,
            TimeRange.MONTHS: 30 * 86400,
        }[self]


class Identity(BaseModel):
    """An authenticated user with roles and optional Google credentials."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Opaque unique identifier")
    email: str = Field(description="Unique, lowercase email address")
    name: str = Field(min_length=1, description="Display name")
    time_zone: str = Field(default="America/New_York", description="IANA time zone name")
    roles: frozenset[Role] = Field(default=frozenset({Role.USER}), description="Granted roles")

    google_access_token: Optional[str] = Field(default=None, repr=False)
    google_refresh_token: Optional[str] = Field(default=None, repr=False)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        email = v.strip().lower()
        if not _EMAIL_RE.match(email):
            raise ValueError("Please provide a valid email address")
        return email

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("roles")
    @classmethod
    def _roles_not_empty(cls, v: frozenset[Role]) -> frozenset[Role]:
        if not v:
            raise ValueError("an identity must hold at least one role")
        return v

    @property
    def has_google_connection(self) -> bool:
        return bool(self.google_access_token)

    def has_any_role(self, roles: frozenset[Role] | set[Role] | tuple[Role, ...]) -> bool:
        return not self.roles.isdisjoint(roles)

    def public_view(self) -> dict[str, Any]:
        """User fields safe to return to clients (never the tokens)."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "timeZone": self.time_zone,
            "roles": sorted(r.value for r in self.roles),
        }


class EmailFilters(BaseModel):
    """Validated mailbox filter parameters for one request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_read: Optional[bool] = Field(default=None, alias="isRead")
    time_range: Optional[TimeRange] = Field(default=None, alias="timeRange")
    time_value: Optional[int] = Field(default=None, gt=0, alias="timeValue")
    max_results: Optional[int] = Field(default=None, ge=1, le=500, alias="maxResults")

    @model_validator(mode="after")
    def _time_window_complete(self) -> "EmailFilters":
        if (self.time_range is None) != (self.time_value is None):
            raise ValueError("timeRange and timeValue must be given together")
        return self

    @property
    def has_time_window(self) -> bool:
        return self.time_range is not None and self.time_value is not None

    def to_response(self) -> dict[str, Any]:
        """Echo only the filters the caller actually set."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


__all__ = [
    "EmailFilters",
    "EmailMessage",
    "Identity",
    "Role",
    "TimeRange",
]
