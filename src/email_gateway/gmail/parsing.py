"""Helpers for parsing Gmail API messages into internal models."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

import structlog

from email_gateway.models import EmailMessage

logger = structlog.get_logger()

UNREAD_LABEL = "UNREAD"


@dataclass(frozen=True)
class MessageHeaders:
    """Header fields lifted from a Gmail payload."""

    subject: str
    sender: str
    to: list[str]
    date: datetime


class BodyKind(Enum):
    NONE = 0
    HTML = 1
    PLAIN = 2


@dataclass(frozen=True)
class BodyMatch:
    """Result of searching one MIME subtree for a readable body."""

    kind: BodyKind
    text: str = ""


_NO_BODY = BodyMatch(BodyKind.NONE)


def _header_map(headers: list[dict[str, Any]]) -> dict[str, str]:
    result: dict[str, str] = {}
    for h in headers:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; keep the first.
            result.setdefault(name.lower(), value)
    return result


def _split_recipients(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_date(value: str | None) -> datetime:
    if value:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError, OverflowError):
            logger.debug("message_date_unparsable", value=value)
        else:
            # "-0000" dates come back naive.
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    # Missing or malformed Date headers fall back to "now".
    return datetime.now(timezone.utc)


def extract_headers(headers: list[dict[str, Any]] | None) -> MessageHeaders:
    """Extract subject, sender, recipients and date from Gmail headers.

    Header names are matched case-insensitively. A missing or unparsable
    ``Date`` header is replaced by the current UTC time.
    """

    hm = _header_map(headers or [])
    return MessageHeaders(
        subject=hm.get("subject", ""),
        sender=hm.get("from", ""),
        to=_split_recipients(hm.get("to")),
        date=_parse_date(hm.get("date")),
    )


def decode_body_data(data: str) -> str | None:
    """Decode Gmail's base64url body data, or None if it is not decodable."""

    # Accept the standard alphabet and missing padding too.
    normalized = data.strip().replace("+", "-").replace("/", "_")
    normalized += "=" * (-len(normalized) % 4)
    try:
        raw = base64.urlsafe_b64decode(normalized.encode("ascii"))
    except (binascii.Error, ValueError):
        return None
    return raw.decode("utf-8", errors="replace")


def _part_data(part: dict[str, Any]) -> str | None:
    body = part.get("body") or {}
    data = body.get("data")
    if not isinstance(data, str) or not data:
        return None
    return decode_body_data(data)


def _search_parts(node: dict[str, Any]) -> BodyMatch:
    parts = node.get("parts") or []
    fallback = _NO_BODY

    for part in parts:
        mime = (part.get("mimeType") or "").lower()
        if mime not in ("text/plain", "text/html"):
            continue
        text = _part_data(part)
        if text is None:
            continue
        if mime == "text/plain":
            return BodyMatch(BodyKind.PLAIN, text)
        if fallback.kind is BodyKind.NONE:
            fallback = BodyMatch(BodyKind.HTML, text)

    for part in parts:
        if not part.get("parts"):
            continue
        found = _search_parts(part)
        if found.kind is BodyKind.PLAIN:
            return found
        if found.kind.value > fallback.kind.value:
            fallback = found

    return fallback


def find_body(payload: dict[str, Any] | None) -> BodyMatch:
    """Locate the best body in a Gmail payload tree.

    Inline data on the top-level node wins outright. Otherwise the MIME tree is
    searched depth-first; a ``text/plain`` part anywhere in the tree is
    preferred over any ``text/html`` part.
    """

    if not payload:
        return _NO_BODY

    text = _part_data(payload)
    if text is not None:
        mime = (payload.get("mimeType") or "").lower()
        kind = BodyKind.HTML if mime == "text/html" else BodyKind.PLAIN
        return BodyMatch(kind, text)

    return _search_parts(payload)


def extract_body(payload: dict[str, Any] | None) -> str:
    return find_body(payload).text


def message_to_email(message: dict[str, Any]) -> EmailMessage:
    """Convert a Gmail API message (format=full) to EmailMessage.

    Args:
        message: Gmail API message dict.

    Returns:
        EmailMessage: The normalized message.
    """

    payload = message.get("payload") or {}
    headers = extract_headers(payload.get("headers"))

    label_ids = message.get("labelIds") or []
    if not isinstance(label_ids, list):
        label_ids = []
    labels = [str(x) for x in label_ids if isinstance(x, str)]

    return EmailMessage(
        id=str(message.get("id") or ""),
        thread_id=str(message.get("threadId") or ""),
        subject=headers.subject,
        sender=headers.sender,
        to=headers.to,
        date=headers.date,
        snippet=message.get("snippet") or "",
        body=extract_body(payload),
        is_read=UNREAD_LABEL not in labels,
        labels=labels,
    )
