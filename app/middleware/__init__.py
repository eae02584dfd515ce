"""Middleware components for the SSO gateway."""

from .rate_limit import (
    InMemoryBackend,
    RateLimitBackend,
    RateLimiter,
    RateLimitResult,
    RedisBackend,
    get_rate_limiter,
    rate_limit,
)
from .request_id import RequestIDMiddleware

__all__ = [
    "InMemoryBackend",
    "RateLimitBackend",
    "RateLimiter",
    "RateLimitResult",
    "RedisBackend",
    "RequestIDMiddleware",
    "get_rate_limiter",
    "rate_limit",
]
