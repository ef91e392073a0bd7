"""
codefixer/rate_limit.py
-----------------------------------------------------------------------------
Coarse in-memory request limiter keyed by client address.

A fixed window per key: the first request opens a window of
``window_seconds``; up to ``max_requests`` requests are allowed inside it.
State lives in this process only, which is enough to stop one client from
flooding the model API through a single instance.

Every hit reports the caller's budget as ``RateLimit-Limit``,
``RateLimit-Remaining`` and ``RateLimit-Reset`` (seconds until the window
closes) headers, which ``codefixer.main`` copies onto the response.

Route handlers run in FastAPI's threadpool, so access is guarded by a
``threading.Lock``.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from codefixer.errors import RateLimitExceeded

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


@dataclass
class _Window:
    started: float
    count: int


class FixedWindowRateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> dict[str, str]:
        """
        Count one request for ``key``.

        Returns
        -------
        dict : ``RateLimit-Limit`` / ``RateLimit-Remaining`` /
               ``RateLimit-Reset`` headers describing the caller's window.

        Raises
        ------
        RateLimitExceeded : ``key`` already used its budget in this window.
                            The same headers travel on the exception.
        """
        with self._lock:
            now = self._clock()
            self._evict(now)
            window = self._windows.get(key)
            if window is None:
                window = self._windows[key] = _Window(started=now, count=0)
            reset = max(1, math.ceil(window.started + self.window_seconds - now))
            if window.count >= self.max_requests:
                raise RateLimitExceeded(
                    RATE_LIMIT_MESSAGE,
                    retry_after=reset,
                    headers=self._headers(0, reset),
                )
            window.count += 1
            return self._headers(self.max_requests - window.count, reset)

    def _headers(self, remaining: int, reset: int) -> dict[str, str]:
        return {
            "RateLimit-Limit": str(self.max_requests),
            "RateLimit-Remaining": str(remaining),
            "RateLimit-Reset": str(reset),
        }

    def reset(self, key: str | None = None) -> None:
        """Forget one key, or every key when ``key`` is None."""
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def _evict(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if now - w.started >= self.window_seconds]
        for k in expired:
            del self._windows[k]
