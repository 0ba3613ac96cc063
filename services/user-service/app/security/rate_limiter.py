"""In-memory sliding window rate limiter implementation."""

from __future__ import annotations

from collections import defaultdict, deque
from threading import Lock
from typing import Deque, DefaultDict

from ..domain.clock import SystemClock, TimeProvider


class SlidingWindowRateLimiter:
    """Thread-safe per-key limiter counting requests inside a trailing window."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: TimeProvider | None = None,
    ) -> None:
        """Initialise limiter parameters, the time source and per-key storage."""
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock or SystemClock()
        self._events: DefaultDict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()
        self._last_sweep = 0.0

    def allow(self, key: str) -> bool:
        """Return ``True`` when the request is within the configured rate limit."""
        now = self._clock.utc_now().timestamp()
        with self._lock:
            if now - self._last_sweep >= self._window:
                self._sweep(now)
            queue = self._events[key]
            while queue and now - queue[0] >= self._window:
                queue.popleft()
            if len(queue) >= self._max_requests:
                return False
            queue.append(now)
            return True

    def _sweep(self, now: float) -> None:
        # drop keys whose newest request already left the window
        stale = [
            key
            for key, queue in self._events.items()
            if not queue or now - queue[-1] >= self._window
        ]
        for key in stale:
            del self._events[key]
        self._last_sweep = now

    def reset(self, key: str | None = None) -> None:
        """Forget recorded requests for ``key``, or for every key."""
        with self._lock:
            if key is None:
                self._events.clear()
            else:
                self._events.pop(key, None)
