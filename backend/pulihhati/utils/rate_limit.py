"""In-memory rate limiter for routes that forward to paid upstream services."""

from __future__ import annotations

import threading
import time
from collections import deque


class InMemoryRateLimiter:
    """Sliding-window limiter keyed by client (single process only)."""

    def __init__(self, window_seconds: int = 60, clock=time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque] = {}
        self._lock = threading.Lock()

    def _prune(self, key: str, now: float) -> deque:
        hits = self._hits.setdefault(key, deque())
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def allow(self, key: str, max_requests: int) -> tuple[bool, int]:
        """Record a hit for `key`; return `(allowed, retry_after_seconds)`."""
        now = self._clock()
        with self._lock:
            hits = self._prune(key, now)
            if len(hits) >= max_requests:
                oldest = hits[0]
                return False, max(1, int(self.window_seconds - (now - oldest)))
            hits.append(now)
        return True, 0

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)
