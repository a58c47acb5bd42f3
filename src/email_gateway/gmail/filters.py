"""Parse raw list-endpoint query parameters into `EmailFilters`."""

from __future__ import annotations

import re
from collections.abc import Mapping

from email_gateway.exceptions import InvalidArgumentError
from email_gateway.models import EmailFilters, TimeRange

MAX_RESULTS_LIMIT = 500

_TIME_RANGES = ", ".join(t.value for t in TimeRange)
_DIGITS_RE = re.compile(r"[0-9]+")


def _get(params: Mapping[str, str | None], key: str) -> str | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    return value


def _parse_int(value: str) -> int | None:
    text = value.strip()
    if not _DIGITS_RE.fullmatch(text):
        return None
    return int(text)


def parse_filters(params: Mapping[str, str | None]) -> EmailFilters:
    """Validate raw filter parameters.

    Args:
        params: Raw query parameters (``isRead``, ``timeRange``, ``timeValue``,
            ``maxResults``). Missing or empty values count as absent.

    Returns:
        EmailFilters: The validated filter record.

    Raises:
        InvalidArgumentError: If a value is malformed or ``timeRange`` and
            ``timeValue`` are not given together.
    """

    is_read: bool | None = None
    raw_is_read = _get(params, "isRead")
    if raw_is_read is not None:
        if raw_is_read not in ("true", "false"):
            raise InvalidArgumentError("isRead must be 'true' or 'false'")
        is_read = raw_is_read == "true"

    time_range: TimeRange | None = None
    raw_time_range = _get(params, "timeRange")
    if raw_time_range is not None:
        try:
            time_range = TimeRange(raw_time_range)
        except ValueError:
            raise InvalidArgumentError(
                f"Invalid timeRange. Must be one of: {_TIME_RANGES}"
            ) from None

    time_value: int | None = None
    raw_time_value = _get(params, "timeValue")
    if raw_time_value is not None:
        time_value = _parse_int(raw_time_value)
        if time_value is None or time_value <= 0:
            raise InvalidArgumentError("timeValue must be a positive number")

    max_results: int | None = None
    raw_max_results = _get(params, "maxResults")
    if raw_max_results is not None:
        max_results = _parse_int(raw_max_results)
        if max_results is None or not 1 <= max_results <= MAX_RESULTS_LIMIT:
            raise InvalidArgumentError(f"maxResults must be between 1 and {MAX_RESULTS_LIMIT}")

    if time_range is not None and time_value is None:
        raise InvalidArgumentError("timeValue is required when timeRange is specified")
    if time_value is not None and time_range is None:
        raise InvalidArgumentError("timeRange is required when timeValue is specified")

    return EmailFilters(
        is_read=is_read,
        time_range=time_range,
        time_value=time_value,
        max_results=max_results,
    )
