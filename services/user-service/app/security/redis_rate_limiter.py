"""Redis-backed sliding window rate limiter."""

from __future__ import annotations

from redis import Redis

from ..domain.clock import SystemClock, TimeProvider


class RedisSlidingWindowRateLimiter:
    """Distributed limiter keeping one sorted set of request timestamps per key.

    The trim, count and insert run inside one MULTI/EXEC pipeline; a request
    that exceeds the limit is removed again so rejected calls do not extend
    the window.
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "rate",
        clock: TimeProvider | None = None,
    ) -> None:
        """Initialise the Redis client, window configuration and time source."""
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._clock = clock or SystemClock()

    def allow(self, key: str) -> bool:
        """Return ``True`` when the key is still within the distributed rate limit."""
        now_ms = int(self._clock.utc_now().timestamp() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        seq = self._client.incr(f"{redis_key}:seq")
        member = f"{now_ms}:{seq}"

        pipe = self._client.pipeline(transaction=True)
        pipe.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        pipe.zadd(redis_key, {member: now_ms})
        pipe.zcard(redis_key)
        pipe.pexpire(redis_key, self._window_ms)
        pipe.pexpire(f"{redis_key}:seq", self._window_ms)
        _, _, current, _, _ = pipe.execute()

        if int(current) > self._max_requests:
            self._client.zrem(redis_key, member)
            return False
        return True
