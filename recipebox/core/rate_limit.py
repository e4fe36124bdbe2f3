"""Admission control for enumeration- and brute-force-sensitive endpoints."""

import threading
import time
from collections import defaultdict
from datetime import timedelta
from typing import Callable, Protocol


class RateLimiter(Protocol):
    """Protocol for rate limiting implementations."""

    def allow(self, key: str) -> bool:
        """Record an attempt for key and report whether it is admitted."""
        ...

    def cleanup(self) -> int:
        """Drop keys with no attempts left in the window; return how many."""
        ...


class InMemoryRateLimiter:
    """Process-local sliding-window limiter.

    Suitable for a single-instance deployment. A multi-instance deployment
    needs a shared counter store behind the same protocol.
    """

    def __init__(
        self,
        max_requests: int,
        window: timedelta,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window = window.total_seconds()
        self._clock = clock
        self._attempts: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        with self._lock:
            now = self._clock()
            recent = [t for t in self._attempts[key] if now - t <= self.window]

            if len(recent) >= self.max_requests:
                self._attempts[key] = recent
                return False

            recent.append(now)
            self._attempts[key] = recent
            return True

    def cleanup(self) -> int:
        with self._lock:
            now = self._clock()
            removed = 0
            for key in list(self._attempts):
                recent = [t for t in self._attempts[key] if now - t <= self.window]
                if recent:
                    self._attempts[key] = recent
                else:
                    del self._attempts[key]
                    removed += 1
            return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)
