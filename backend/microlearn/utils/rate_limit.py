"""In-memory rate limiter guarding answer validation."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque


class SlidingWindowLimiter:
    """Sliding-window limiter keyed by caller.

    Answer validation is cheap, so the limit is about stopping a client
    from enumerating options until one comes back correct.
    """

    def __init__(self, clock=time.monotonic):
        self._hits: dict[str, deque] = defaultdict(deque)
        self._lock = threading.Lock()
        self._clock = clock

    def allow(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        """Record a hit for `key` and report whether it fits the window.

        Returns `(allowed, retry_after_seconds)`; `retry_after` is 0 when
        allowed.
        """
        if max_requests <= 0:
            return True, 0
        now = self._clock()
        with self._lock:
            hits = self._hits[key]
            cutoff = now - window_seconds
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= max_requests:
                return False, max(1, int(window_seconds - (now - hits[0])))
            hits.append(now)
            return True, 0

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)
