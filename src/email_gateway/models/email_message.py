"""Normalized Gmail message model.

One `EmailMessage` is derived from one Gmail API message (format=full) per
request. It is never persisted; its JSON form is what API clients receive.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EmailMessage(BaseModel):
    """A uniform representation of a mailbox message."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Gmail message ID")
    thread_id: str = Field(default="", alias="threadId", description="Gmail thread ID")
    subject: str = Field(default="", description="Subject header")

    # Raw From header, display name included.
    sender: str = Field(default="", alias="from", description="From header")
    to: list[str] = Field(default_factory=list, description="To header entries")

    date: datetime = Field(description="Parsed Date header")
    snippet: str = Field(default="", description="Short preview provided by Gmail")
    body: str = Field(default="", description="Extracted text body (plain preferred over html)")

    is_read: bool = Field(default=True, alias="isRead", description="Whether the message is read")
    labels: list[str] = Field(default_factory=list, description="Gmail label IDs")

    def to_response(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used on the wire."""
        return self.model_dump(by_alias=True, mode="json")
