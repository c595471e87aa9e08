"""In-memory sliding window rate limiter implementation."""

import time
from collections import deque
from collections.abc import Callable
from threading import Lock


class SlidingWindowRateLimiter:
    """
    Implements RateLimiter protocol for a single process.

    Thread-safe. Use the Redis limiter when several replicas must share
    one budget. Keys with no event inside the window are dropped, at most
    once per window, so idle emails and addresses do not accumulate.
    """

    def __init__(
        self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._events: dict[str, deque[float]] = {}
        self._last_sweep = clock()
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        """Return ``True`` when the request is within the configured rate limit."""
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self._window:
                self._sweep(now)
            queue = self._events.setdefault(key, deque())
            while queue and now - queue[0] >= self._window:
                queue.popleft()
            if len(queue) >= self._max_requests:
                return False
            queue.append(now)
            return True

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._events)

    def _sweep(self, now: float) -> None:
        # caller holds the lock
        stale = [
            key for key, queue in self._events.items() if not queue or now - queue[-1] >= self._window
        ]
        for key in stale:
            del self._events[key]
        self._last_sweep = now
