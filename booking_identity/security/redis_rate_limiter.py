"""Redis-backed sliding window rate limiter shared by every API worker."""

from __future__ import annotations

import math
import time
from typing import Final

from redis import Redis
from redis.exceptions import ResponseError

from .rate_limiter import RateLimitDecision


class RedisSlidingWindowRateLimiter:
    """Distributed sliding window limiter storing attempt timestamps in sorted sets."""

    # Returns -1 when the attempt is recorded, otherwise the oldest score in the window.
    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local window_ms = tonumber(ARGV[1])
    local max_requests = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])

    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    if redis.call('ZCARD', key) >= max_requests then
        local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
        return tonumber(oldest[2])
    end
    local seq = redis.call('INCR', key .. ':seq')
    redis.call('PEXPIRE', key .. ':seq', window_ms)
    redis.call('ZADD', key, now_ms, now_ms .. ':' .. seq)
    redis.call('PEXPIRE', key, window_ms)
    return -1
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "identity:rate",
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._script = client.register_script(self._LUA_SCRIPT)

    def hit(self, key: str) -> RateLimitDecision:
        """Record an attempt for ``key`` across all workers unless the window is full."""
        now_ms = int(time.time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        try:
            oldest_ms = int(self._script(keys=[redis_key], args=[self._window_ms, self._max_requests, now_ms]))
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command" not in message or "eval" not in message:
                raise
            oldest_ms = self._hit_without_lua(redis_key, now_ms)
        if oldest_ms < 0:
            return RateLimitDecision(allowed=True)
        return RateLimitDecision(allowed=False, retry_after_seconds=self._retry_after(oldest_ms, now_ms))

    def _hit_without_lua(self, redis_key: str, now_ms: int) -> int:
        """Equivalent of the Lua script for servers that disable scripting."""
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        oldest = self._client.zrange(redis_key, 0, 0, withscores=True)
        if self._client.zcard(redis_key) >= self._max_requests:
            return int(oldest[0][1]) if oldest else now_ms
        seq = self._client.incr(f"{redis_key}:seq")
        pipe = self._client.pipeline()
        pipe.pexpire(f"{redis_key}:seq", self._window_ms)
        pipe.zadd(redis_key, {f"{now_ms}:{seq}": now_ms})
        pipe.pexpire(redis_key, self._window_ms)
        pipe.execute()
        return -1

    def _retry_after(self, oldest_ms: int, now_ms: int) -> int:
        return max(1, math.ceil((oldest_ms + self._window_ms - now_ms) / 1000))
