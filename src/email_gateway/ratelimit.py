"""Per-IP request rate limiting.

Each `RateLimitPolicy` counts requests per caller key in fixed windows. The
counters live in a `RateWindowStore`; the in-memory store does its
read-modify-write under a lock so concurrent requests from one caller are
never undercounted. A different store (e.g. a cache with atomic increments)
can be injected, as can the clock.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import structlog

logger = structlog.get_logger()

FIFTEEN_MINUTES = 15 * 60


@dataclass(frozen=True)
class RateLimitPolicy:
    """A named limit: at most ``max_requests`` per ``window_seconds``."""

    name: str
    window_seconds: float
    max_requests: int
    message: str = "Too many requests. Please try again later."


# Authentication endpoints (login, OAuth callbacks).
STRICT = RateLimitPolicy(
    "strict",
    FIFTEEN_MINUTES,
    5,
    "Too many authentication attempts. Please try again in 15 minutes.",
)
STANDARD = RateLimitPolicy("standard", FIFTEEN_MINUTES, 100)
# Public endpoints such as health checks.
LENIENT = RateLimitPolicy("lenient", FIFTEEN_MINUTES, 1000, "Too many requests. Please slow down.")
# Baseline applied to every route.
GLOBAL = RateLimitPolicy(
    "global",
    FIFTEEN_MINUTES,
    500,
    "Too many requests from this IP. Please try again later.",
)
API = RateLimitPolicy("api", FIFTEEN_MINUTES, 200, "Too many API requests. Please try again later.")


@dataclass(frozen=True)
class RateWindow:
    count: int
    started_at: float
    window_seconds: float

    def expired(self, now: float) -> bool:
        return now - self.started_at >= self.window_seconds


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int
    limit: int
    retry_after: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class RateWindowStore(Protocol):
    def increment(self, policy: RateLimitPolicy, key: str, now: float) -> RateWindow:
        """Atomically count one request and return the resulting window."""
        ...


class InMemoryRateWindowStore:
    """Process-wide window counters keyed by (policy name, caller key)."""

    def __init__(self, sweep_interval: float = 60.0) -> None:
        self._lock = threading.Lock()
        self._windows: dict[tuple[str, str], RateWindow] = {}
        self._sweep_interval = sweep_interval
        self._last_sweep: float | None = None

    def increment(self, policy: RateLimitPolicy, key: str, now: float) -> RateWindow:
        with self._lock:
            self._maybe_sweep(now)
            slot = (policy.name, key)
            window = self._windows.get(slot)
            if window is None or window.expired(now):
                window = RateWindow(1, now, policy.window_seconds)
            else:
                window = RateWindow(window.count + 1, window.started_at, window.window_seconds)
            self._windows[slot] = window
            return window

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _maybe_sweep(self, now: float) -> None:
        # Stale windows are dropped opportunistically.
        if self._last_sweep is not None and now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now
        stale = [slot for slot, w in self._windows.items() if w.expired(now)]
        for slot in stale:
            del self._windows[slot]


class RateGate:
    """Checks requests against rate limit policies."""

    def __init__(
        self,
        store: RateWindowStore | None = None,
        clock: Callable[[], float] = time.monotonic,
        enabled: bool = True,
    ) -> None:
        self.store = store if store is not None else InMemoryRateWindowStore()
        self._clock = clock
        self.enabled = enabled

    def check(self, policy: RateLimitPolicy, key: str) -> RateDecision:
        """Count one request from ``key`` under ``policy``.

        Returns:
            RateDecision: ``allowed`` is False once the count exceeds the
            policy maximum; ``retry_after`` is then the whole seconds left in
            the current window.
        """

        if not self.enabled:
            return RateDecision(allowed=True, count=0, limit=policy.max_requests)

        now = self._clock()
        window = self.store.increment(policy, key, now)
        if window.count <= policy.max_requests:
            return RateDecision(allowed=True, count=window.count, limit=policy.max_requests)

        remaining = window.started_at + window.window_seconds - now
        retry_after = max(1, math.ceil(remaining))
        logger.debug(
            "rate_window_exhausted",
            policy=policy.name,
            key=key,
            count=window.count,
            retry_after=retry_after,
        )
        return RateDecision(
            allowed=False,
            count=window.count,
            limit=policy.max_requests,
            retry_after=retry_after,
        )
