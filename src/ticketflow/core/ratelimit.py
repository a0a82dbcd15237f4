from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Protocol

from ticketflow.core.context import RequestContext
from ticketflow.core.errors import RateLimited
from ticketflow.core.logging import EventLogger


class RateLimiter(Protocol):
    def is_allowed(self, key: str) -> bool: ...

    def reset(self, key: str) -> None: ...


class SlidingWindowRateLimiter:
    """At most `max_requests` hits per `window_seconds` for each key."""

    def __init__(
        self,
        *,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def is_allowed(self, key: str) -> bool:
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)

    def _sweep(self, cutoff: float) -> None:
        # A key whose newest hit is outside the window would prune to empty.
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]


def enforce_rate_limit(
    limiter: RateLimiter,
    key: str,
    *,
    context: RequestContext,
    events: EventLogger,
) -> None:
    if limiter.is_allowed(key):
        return
    events.emit(
        "rate_limit_exceeded",
        level=logging.WARNING,
        request_id=context.request_id,
        rate_limit_key=key,
    )
    raise RateLimited("Too many requests; wait a moment and try again.", context=context)
