"""Per-provider sliding-window limit on JWKS fetches."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable

DEFAULT_REQUESTS_PER_MINUTE = 10
_WINDOW_SECONDS = 60.0


class SlidingWindowRateLimiter:
    """Allow at most N fetch attempts per provider in any rolling window."""

    def __init__(
        self,
        requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
        window_seconds: float = _WINDOW_SECONDS,
        now: Callable[[], float] | None = None,
    ) -> None:
        """Initialize limiter with explicit capacity for testability."""
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be a positive integer.")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive.")
        self._limit = requests_per_minute
        self._window_seconds = window_seconds
        self._now = now or time.monotonic
        self._attempts: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        """Maximum fetch attempts per provider in one window."""
        return self._limit

    def try_acquire(self, jwks_uri: str) -> bool:
        """Record one fetch attempt and return False when over the limit."""
        now = self._now()
        window_start = now - self._window_seconds
        with self._lock:
            attempts = self._attempts.setdefault(jwks_uri, deque())
            while attempts and attempts[0] <= window_start:
                attempts.popleft()
            if len(attempts) >= self._limit:
                return False
            attempts.append(now)
            return True

    def remaining(self, jwks_uri: str) -> int:
        """Return how many attempts the provider has left in the current window."""
        window_start = self._now() - self._window_seconds
        with self._lock:
            attempts = self._attempts.get(jwks_uri)
            if attempts is None:
                return self._limit
            in_window = sum(1 for stamp in attempts if stamp > window_start)
            return self._limit - in_window
