"""Translate `EmailFilters` into a Gmail search query string."""

from __future__ import annotations

from datetime import datetime, timedelta

from email_gateway.models import EmailFilters


def cutoff_for(filters: EmailFilters, now: datetime) -> datetime | None:
    """Return the start of the filter's time window, or None without one."""

    if filters.time_range is None or filters.time_value is None:
        return None
    return now - timedelta(seconds=filters.time_value * filters.time_range.seconds)


def build_query(filters: EmailFilters, now: datetime | None = None) -> str:
    """Build the Gmail ``q`` parameter for the given filters.

    Args:
        filters: Validated filters.
        now: Reference time. Defaults to the current local time.

    Returns:
        Space separated Gmail search clauses, or "" when no filter applies.
    """

    parts: list[str] = []

    if filters.is_read is not None:
        parts.append("is:read" if filters.is_read else "is:unread")

    cutoff = cutoff_for(filters, now or datetime.now())
    if cutoff is not None:
        # Gmail's after: operator is day-granular.
        parts.append(f"after:{cutoff:%Y/%m/%d}")

    return " ".join(parts)
