"""Rate limiting adapters.

This package provides a small abstraction layer so the HTTP integration
depends on ``AbstractRateLimiter`` while bucket state lives in Redis.
"""

from ratelimiter.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from ratelimiter.adapters.rate_limit.redis_token_bucket import RedisTokenBucketRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "RateLimitResult",
    "RedisTokenBucketRateLimiter",
]
