"""
Per-key sliding-window rate limit, in memory. Guards magic-link requests so one
client cannot flood an inbox or the identity authority.
"""
import math
import threading
import time
from typing import Callable

from web_app.config import RATE_LIMIT_LOGIN_PER_MINUTE


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_seconds: int = 60, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def check_and_consume(self, key: str) -> tuple[bool, int | None]:
        """
        (allowed, retry_after_seconds). An allowed call is recorded; a refused one is not.
        limit <= 0 disables limiting.
        """
        if self.limit <= 0:
            return True, None
        now = self._clock()
        with self._lock:
            hits = [t for t in self._hits.get(key, []) if t > now - self.window_seconds]
            if len(hits) >= self.limit:
                self._hits[key] = hits
                retry_after = max(1, math.ceil(self.window_seconds - (now - min(hits))))
                return False, retry_after
            hits.append(now)
            self._hits[key] = hits
            return True, None

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


login_limiter = SlidingWindowLimiter(RATE_LIMIT_LOGIN_PER_MINUTE)
