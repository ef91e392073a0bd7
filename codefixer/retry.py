"""
codefixer/retry.py
-----------------------------------------------------------------------------
Bounded retry for calls to the generative-AI service.

A :class:`RetryPolicy` bundles three decisions that are otherwise easy to
tangle into a loop body:

- ``max_attempts`` – how many times the call may run in total.
- ``backoff``      – delay in seconds before attempt *n + 1*, given *n*.
- ``retryable``    – which exceptions are worth another attempt.

Only connection-level transport failures are retried by default.  HTTP
status errors, timeouts and anything raised by our own parsing propagate on
the first occurrence: repeating a slow or rejected request rarely helps and
doubles the wait for the user.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_network_error(exc: BaseException) -> bool:
    """True for failures that happen before a response was received."""
    return isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError))


def fixed_backoff(delay: float) -> Callable[[int], float]:
    """Backoff function that always waits ``delay`` seconds."""

    def _backoff(attempt: int) -> float:
        return delay

    return _backoff


def exponential_backoff(base: float, cap: float = 30.0) -> Callable[[int], float]:
    """Backoff function doubling from ``base``, never exceeding ``cap``."""

    def _backoff(attempt: int) -> float:
        return min(cap, base * (2 ** (attempt - 1)))

    return _backoff


@dataclass(frozen=True)
class RetryPolicy:
    """
    How to retry a callable.

    ``sleep`` is injectable so tests can run without waiting.
    """

    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=lambda: fixed_backoff(2.0))
    retryable: Callable[[BaseException], bool] = is_transient_network_error
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def call(self, fn: Callable[[], T], *, description: str = "call") -> T:
        """
        Run ``fn`` until it succeeds, raises a non-retryable error, or the
        attempt budget is spent.  The last exception is re-raised unchanged.
        """
        attempt = 1
        while True:
            try:
                return fn()
            except Exception as exc:
                if not self.retryable(exc) or attempt >= self.max_attempts:
                    if attempt > 1:
                        logger.error(
                            "%s failed after %d attempt(s): %s: %s",
                            description,
                            attempt,
                            type(exc).__name__,
                            exc,
                        )
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "%s attempt %d/%d failed (%s: %s); retrying in %.1fs",
                    description,
                    attempt,
                    self.max_attempts,
                    type(exc).__name__,
                    exc,
                    delay,
                )
                self.sleep(delay)
                attempt += 1
