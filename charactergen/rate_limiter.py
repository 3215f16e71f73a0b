# charactergen/rate_limiter.py

"""
Sliding-window rate limiter owned by each provider client.

`acquire()` blocks the calling thread until one more request fits in the
window instead of rejecting it. The timestamp deque is guarded by a lock that
is held across the wait, so concurrent callers are served one at a time and
can never push the window over its limit together.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque

from charactergen.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    At most `max_requests` acquisitions per rolling `window` seconds.

    Args:
        max_requests (int): Requests allowed inside one window.
        window (float): Window length in seconds.
        clock (Callable): Monotonic clock, injectable for tests.
        sleep (Callable): Sleep function, injectable for tests.
    """

    def __init__(
        self,
        max_requests: int,
        window: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_requests < 1:
            raise ConfigurationError("rate limit max_requests must be at least 1")
        if window <= 0:
            raise ConfigurationError("rate limit window must be positive")

        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        while self._timestamps and self._timestamps[0] <= now - self.window:
            self._timestamps.popleft()

    def acquire(self) -> None:
        """Wait until a request slot is free, then claim it."""
        with self._lock:
            now = self._clock()
            self._purge(now)

            if len(self._timestamps) >= self.max_requests:
                wait_time = self._timestamps[0] + self.window - now
                if wait_time > 0:
                    logger.debug(f"[RateLimiter] window full ({len(self._timestamps)}/{self.max_requests}), sleeping {wait_time:.3f}s")
                    self._sleep(wait_time)
                now = self._clock()
                self._purge(now)
                # Clock granularity can leave the oldest entry exactly on the edge.
                if len(self._timestamps) >= self.max_requests:
                    self._timestamps.popleft()

            self._timestamps.append(now)

    @property
    def in_window(self) -> int:
        """Number of requests currently counted against the window."""
        with self._lock:
            self._purge(self._clock())
            return len(self._timestamps)
