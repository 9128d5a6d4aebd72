"""Sliding-window request limiter for the public endpoints (sign-in, inbound webhook)."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque


class SlidingWindowLimiter:
    def __init__(self, max_requests: int, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: dict[str, deque] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str) -> int:
        """Record a request for `key`.

        Returns 0 when allowed, otherwise the seconds to wait before retrying.
        A non-positive `max_requests` disables limiting.
        """
        if self.max_requests <= 0:
            return 0
        now = time.monotonic()
        with self._lock:
            hits = self._hits[key]
            while hits and hits[0] <= now - self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return max(1, int(self.window_seconds - (now - hits[0])))
            hits.append(now)
        return 0

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
