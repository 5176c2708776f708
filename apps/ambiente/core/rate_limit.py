from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

from fastapi import Request

from ambiente.core.exceptions import RateLimitError
from ambiente.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_s: float


class ApiRateLimiter:
    """In-process fixed-window limiter for inbound API calls, keyed by client."""

    def __init__(
        self,
        policy: RateLimitPolicy,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy
        self._clock = clock
        self._lock = Lock()
        self._window_start: dict[str, float] = {}
        self._count: dict[str, int] = {}
        self._last_prune: float | None = None

    def hit(self, key: str) -> bool:
        """Count one request for `key`; return False once the window is exhausted."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            start = self._window_start.get(key)
            if start is None or now - start >= self.policy.window_s:
                self._window_start[key] = now
                self._count[key] = 0
            self._count[key] += 1
            return self._count[key] <= self.policy.max_requests

    def _prune(self, now: float) -> None:
        # At most once per window; callers hold the lock.
        if self._last_prune is not None and now - self._last_prune < self.policy.window_s:
            return
        self._last_prune = now
        expired = [
            key
            for key, start in self._window_start.items()
            if now - start >= self.policy.window_s
        ]
        for key in expired:
            del self._window_start[key]
            del self._count[key]

    def reset(self) -> None:
        with self._lock:
            self._window_start.clear()
            self._count.clear()
            self._last_prune = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._window_start)


def client_key(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


api_rate_limiter = ApiRateLimiter(
    RateLimitPolicy(
        max_requests=settings.api_rate_limit_max,
        window_s=settings.api_rate_limit_window_seconds,
    )
)


def enforce_api_rate_limit(request: Request) -> None:
    """FastAPI dependency: raise 429 when the caller exceeds the API policy."""
    key = client_key(request)
    if not api_rate_limiter.hit(key):
        logger.info("Rate limit exceeded for %s", key)
        raise RateLimitError("Too many requests, please try again later")


__all__ = [
    "ApiRateLimiter",
    "RateLimitPolicy",
    "api_rate_limiter",
    "client_key",
    "enforce_api_rate_limit",
]
