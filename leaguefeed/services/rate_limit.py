from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable

from loguru import logger

try:
    from leaguefeed.services.config import RateLimitConfig
    from leaguefeed.services.errors import RateLimitExceeded
except ModuleNotFoundError:
    from services.config import RateLimitConfig
    from services.errors import RateLimitExceeded

DEFAULT_RESOURCE_CLASS = "default"


class RateLimitWindow:
    """Sliding window of recent request timestamps for one resource class."""

    def __init__(
        self,
        resource_class: str,
        max_requests: int,
        window_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.resource_class = resource_class
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0

    def _prune(self, now: float) -> None:
        horizon = now - self.window_seconds
        while self._timestamps and self._timestamps[0] <= horizon:
            self._timestamps.popleft()

    def reserve(self) -> float:
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._timestamps) >= self.max_requests:
                retry_after = self._timestamps[0] + self.window_seconds - now
                raise RateLimitExceeded(self.resource_class, max(retry_after, 0.0))
            self._timestamps.append(now)
            return now

    def recent_requests(self) -> list[float]:
        with self._lock:
            self._prune(self._clock())
            return list(self._timestamps)


class RateLimiter:
    def __init__(
        self,
        limits: dict[str, RateLimitConfig],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._windows: dict[str, RateLimitWindow] = {
            name: RateLimitWindow(name, config.max_requests, config.window_ms, clock=clock)
            for name, config in limits.items()
        }
        if DEFAULT_RESOURCE_CLASS not in self._windows:
            self._windows[DEFAULT_RESOURCE_CLASS] = RateLimitWindow(
                DEFAULT_RESOURCE_CLASS, 4, 1000, clock=clock
            )

    def window(self, resource_class: str) -> RateLimitWindow:
        return self._windows.get(resource_class, self._windows[DEFAULT_RESOURCE_CLASS])

    def acquire(self, resource_class: str) -> float:
        """Block until the window for ``resource_class`` has room, then record the call."""
        window = self.window(resource_class)
        while True:
            try:
                return window.reserve()
            except RateLimitExceeded as exc:
                logger.debug(
                    "Rate limit saturated for {}; waiting {:.3f}s",
                    exc.resource_class,
                    exc.retry_after,
                )
                # Sleep without holding the window lock.
                self._sleep(exc.retry_after)

    def snapshot(self) -> dict[str, dict[str, int]]:
        return {
            name: {
                "max_requests": window.max_requests,
                "window_ms": window.window_ms,
                "recent_requests": len(window.recent_requests()),
            }
            for name, window in self._windows.items()
        }
