"""Sliding window rate limiting for credential endpoints."""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable, DefaultDict, Deque, Protocol

from ..config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int = 0


class RateLimiter(Protocol):
    def hit(self, key: str) -> RateLimitDecision:
        ...


class SlidingWindowRateLimiter:
    """Thread-safe in-process sliding window limiter keyed by caller-chosen strings."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._events: DefaultDict[str, Deque[float]] = DefaultDict(deque)
        self._lock = Lock()

    def hit(self, key: str) -> RateLimitDecision:
        """Record an attempt for ``key`` unless the window is already full."""
        now = self._clock()
        with self._lock:
            queue = self._events[key]
            while queue and now - queue[0] >= self._window:
                queue.popleft()
            if len(queue) >= self._max_requests:
                retry_after = max(1, math.ceil(self._window - (now - queue[0])))
                return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)
            queue.append(now)
            return RateLimitDecision(allowed=True)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Instantiate the configured limiter backend, preferring Redis when it is reachable."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        import redis

        from .redis_rate_limiter import RedisSlidingWindowRateLimiter

        try:
            client = redis.from_url(settings.redis_url)
            client.ping()
        except redis.RedisError as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("rate limiter configured for redis backend")
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
