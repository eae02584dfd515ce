"""
Per-client rate limiting for the SSO endpoints.

This module provides a sliding window rate limiter that:
- Limits requests per client IP on every /api/auth route
- Uses the state store's Redis connection when Redis is configured
- Falls back to an in-memory window when Redis is absent or failing
- Returns 429 responses with Retry-After headers

Usage:
    router = APIRouter(prefix="/api/auth", dependencies=[Depends(rate_limit)])
"""

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from fastapi import Depends, Request
from redis.exceptions import RedisError

from app.dependencies import get_state_backend
from sso_gateway.auth.errors import RateLimitExceededError
from sso_gateway.config import get_settings
from sso_gateway.storage.redis_client import RedisClient
from sso_gateway.storage.state_store import RedisStateBackend

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # Unix timestamp
    retry_after: Optional[int] = None  # Seconds until a slot frees up, if blocked


# =============================================================================
# Backend Implementations
# =============================================================================


class RateLimitBackend(ABC):
    """Abstract base class for rate limit storage backends."""

    @abstractmethod
    async def record_request(
        self, key: str, timestamp: float, window_seconds: int
    ) -> Tuple[int, float]:
        """
        Record a request and return the count within the window.

        Args:
            key: Unique identifier for the rate limit bucket.
            timestamp: Current Unix timestamp.
            window_seconds: Size of the sliding window in seconds.

        Returns:
            Tuple of (count within window, oldest timestamp in window).
        """


class InMemoryBackend(RateLimitBackend):
    """
    Thread-safe in-memory rate limit backend.

    Uses a sliding window log with periodic cleanup of idle clients.
    """

    def __init__(self, cleanup_interval: int = 300):
        self._storage: Dict[str, List[float]] = {}
        self._lock = threading.RLock()
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = time.time()

    def _maybe_cleanup_all(self, current_time: float, window_seconds: int) -> None:
        """Periodically drop clients with no requests left in the window."""
        if current_time - self._last_cleanup <= self._cleanup_interval:
            return
        self._last_cleanup = current_time

        cutoff = current_time - window_seconds
        keys_to_remove = []
        for key, timestamps in self._storage.items():
            self._storage[key] = [t for t in timestamps if t > cutoff]
            if not self._storage[key]:
                keys_to_remove.append(key)

        for key in keys_to_remove:
            del self._storage[key]

        if keys_to_remove:
            logger.debug(f"Cleaned up {len(keys_to_remove)} idle rate limit keys")

    async def record_request(
        self, key: str, timestamp: float, window_seconds: int
    ) -> Tuple[int, float]:
        with self._lock:
            self._maybe_cleanup_all(timestamp, window_seconds)

            cutoff = timestamp - window_seconds
            window = [t for t in self._storage.get(key, []) if t > cutoff]
            window.append(timestamp)
            self._storage[key] = window

            return len(window), window[0]


class RedisBackend(RateLimitBackend):
    """
    Redis rate limit backend shared by every replica.

    One sorted set per client, scored by request timestamp.
    """

    def __init__(self, client: RedisClient, key_prefix: str = "rate:"):
        self.client = client
        self._key_prefix = key_prefix

    async def record_request(
        self, key: str, timestamp: float, window_seconds: int
    ) -> Tuple[int, float]:
        redis_conn = await self.client.get_client()
        if redis_conn is None:
            raise ConnectionError("Redis not connected")

        redis_key = f"{self._key_prefix}{key}"
        cutoff = timestamp - window_seconds
        # Unique member so concurrent requests in the same instant all count
        member = f"{timestamp:.6f}:{uuid.uuid4().hex[:8]}"

        async with redis_conn.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(redis_key, "-inf", cutoff)
            pipe.zadd(redis_key, {member: timestamp})
            pipe.zcard(redis_key)
            pipe.zrange(redis_key, 0, 0, withscores=True)
            pipe.expire(redis_key, window_seconds + 60)
            results = await pipe.execute()

        count = results[2]
        oldest_entries = results[3]
        oldest = oldest_entries[0][1] if oldest_entries else timestamp
        return count, oldest


# =============================================================================
# Rate Limiter
# =============================================================================


class RateLimiter:
    """
    Sliding window limiter with an in-memory fallback.

    Args:
        backend: Primary storage backend
        limit: Maximum requests per client within the window
        window_seconds: Window size in seconds
        enabled: When False every request is allowed
    """

    def __init__(
        self,
        backend: RateLimitBackend,
        limit: int = 100,
        window_seconds: int = 60,
        enabled: bool = True,
    ):
        self._backend = backend
        self._fallback_backend = InMemoryBackend()
        self.limit = limit
        self.window_seconds = window_seconds
        self.enabled = enabled

    async def check(self, client_id: str) -> RateLimitResult:
        """Record a request for ``client_id`` and report whether it is allowed."""
        now = time.time()

        if not self.enabled:
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=self.limit,
                reset_at=int(now + self.window_seconds),
            )

        try:
            count, oldest = await self._backend.record_request(
                client_id, now, self.window_seconds
            )
        except (RedisError, ConnectionError) as e:
            logger.warning(f"Rate limit backend error, using fallback: {e}")
            count, oldest = await self._fallback_backend.record_request(
                client_id, now, self.window_seconds
            )

        reset_at = int(oldest + self.window_seconds)

        if count > self.limit:
            return RateLimitResult(
                allowed=False,
                limit=self.limit,
                remaining=0,
                reset_at=reset_at,
                retry_after=max(1, reset_at - int(now)),
            )

        return RateLimitResult(
            allowed=True,
            limit=self.limit,
            remaining=self.limit - count,
            reset_at=reset_at,
        )


# =============================================================================
# Singleton and Dependency
# =============================================================================


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the singleton rate limiter, sharing the state store's Redis connection."""
    global _rate_limiter
    if _rate_limiter is None:
        settings = get_settings().rate_limit
        state_backend = get_state_backend()

        if isinstance(state_backend, RedisStateBackend):
            backend: RateLimitBackend = RedisBackend(state_backend.client)
            logger.info("Rate limiter using Redis backend")
        else:
            backend = InMemoryBackend()
            logger.info("Rate limiter using in-memory backend")

        _rate_limiter = RateLimiter(
            backend,
            limit=settings.rate_limit_max,
            window_seconds=settings.rate_limit_window_seconds,
            enabled=settings.rate_limit_enabled,
        )
    return _rate_limiter


def client_identifier(request: Request) -> str:
    """Rate limit key for the requesting client."""
    return request.client.host if request.client else "unknown"


async def rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    """
    FastAPI dependency that enforces the per-client limit.

    Raises:
        RateLimitExceededError: 429 with Retry-After when the limit is exceeded
    """
    client_id = client_identifier(request)
    result = await limiter.check(client_id)

    if not result.allowed:
        logger.warning(
            f"Rate limit exceeded on {request.url.path}: {result.limit}/{limiter.window_seconds}s",
            extra={"client": client_id},
        )
        raise RateLimitExceededError(
            retry_after=result.retry_after,
            limit=result.limit,
            reset_at=result.reset_at,
            details={"client": client_id},
        )
