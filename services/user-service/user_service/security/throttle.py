"""Sliding window rate limiting for account creation and credential rotation."""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from threading import Lock
from typing import Deque, DefaultDict, Protocol

from redis import Redis

from ..config import Settings

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool:
        """Return ``True`` when another attempt for ``key`` is permitted."""


class InMemoryRateLimiter:
    """Per-process sliding window limiter guarded by a lock."""

    def __init__(self, max_requests: int, window_seconds: int) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._attempts: DefaultDict[str, Deque[float]] = DefaultDict(deque)
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        now = time.monotonic()
        with self._lock:
            attempts = self._attempts[key]
            while attempts and now - attempts[0] > self._window:
                attempts.popleft()
            if len(attempts) >= self._max_requests:
                return False
            attempts.append(now)
            return True


class RedisRateLimiter:
    """Limiter shared across workers, kept in one Redis sorted set per key.

    Trim, add and count run in one MULTI block. Refused attempts are removed
    again and never count against the window.
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "user-service:rate",
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix

    def allow(self, key: str) -> bool:
        now_ms = int(time.time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        attempt = f"{now_ms}:{uuid.uuid4().hex}"

        with self._client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
            pipe.zadd(redis_key, {attempt: now_ms})
            pipe.zcard(redis_key)
            pipe.pexpire(redis_key, self._window_ms)
            _, _, in_window, _ = pipe.execute()

        if in_window > self._max_requests:
            self._client.zrem(redis_key, attempt)
            return False
        return True


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Instantiate the configured limiter, falling back to memory when Redis is unreachable."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            client.ping()
        except Exception as exc:  # pragma: no cover - depends on a live server
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )

    logger.info("rate limiter using in-memory backend")
    return InMemoryRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
