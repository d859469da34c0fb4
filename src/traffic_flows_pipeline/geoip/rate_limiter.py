"""
Fixed-window rate limiting for geolocation providers.

Each provider gets its own limiter. Counters are process-local and are
never persisted, so a restart starts every window fresh.
"""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window request counter.

    A window opens at the first call after the previous one elapsed; up to
    ``max_requests`` permits are granted inside it. Every granted call
    counts, whether or not the request that follows succeeds.

    Usage:
        limiter = RateLimiter(max_requests=45, window_seconds=60.0)
        if limiter.try_acquire():
            call_provider()
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Optional[Callable[[], float]] = None,
        name: str = "",
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Maximum requests allowed per window
            window_seconds: Window length in seconds
            clock: Returns current time in seconds (default: time.monotonic)
            name: Label used in log messages
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._count = 0
        self._window_start = self._clock()

    def _roll_window(self, now: float) -> None:
        # Caller holds the lock
        if now - self._window_start >= self.window_seconds:
            self._count = 0
            self._window_start = now

    def try_acquire(self) -> bool:
        """
        Attempt to acquire permission to make a request.

        Returns:
            True if request is allowed, False if rate limited
        """
        with self._lock:
            self._roll_window(self._clock())
            if self._count < self.max_requests:
                self._count += 1
                return True

        logger.debug(f"Rate limit reached for {self.name or 'provider'}")
        return False

    def reset(self) -> None:
        """Reset the counter and open a new window now."""
        with self._lock:
            self._count = 0
            self._window_start = self._clock()

    @property
    def remaining_requests(self) -> int:
        """Get the number of remaining requests in the current window."""
        with self._lock:
            self._roll_window(self._clock())
            return max(0, self.max_requests - self._count)

    @property
    def time_until_reset(self) -> float:
        """Seconds until the current window closes."""
        with self._lock:
            elapsed = self._clock() - self._window_start
            return max(0.0, self.window_seconds - elapsed)


class RateLimiterRegistry:
    """
    Rate limiters keyed by provider id.

    Limiters are created on first use, so the same key always returns the
    same instance.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock
        self._limiters: dict[str, RateLimiter] = {}
        self._lock = threading.Lock()

    def get(
        self,
        provider_id: str,
        max_requests: int = 45,
        window_seconds: float = 60.0,
    ) -> RateLimiter:
        with self._lock:
            if provider_id not in self._limiters:
                self._limiters[provider_id] = RateLimiter(
                    max_requests=max_requests,
                    window_seconds=window_seconds,
                    clock=self._clock,
                    name=provider_id,
                )
            return self._limiters[provider_id]

    def try_acquire(self, provider_id: str) -> bool:
        """
        Acquire a permit for a registered provider.

        Raises:
            KeyError: If no limiter exists for provider_id
        """
        with self._lock:
            limiter = self._limiters[provider_id]
        return limiter.try_acquire()
