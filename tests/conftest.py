"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so no .env file is loaded, and pins the settings the
HTTP tests rely on.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("APP_RATE_LIMIT_CAPACITY", "5")
os.environ.setdefault("APP_RATE_LIMIT_REFILL_RATE", "1")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import fakeredis
import pytest

from ratelimiter.adapters.rate_limit.redis_token_bucket import RedisTokenBucketRateLimiter


class FakeClock:
    """Deterministic clock returning UNIX seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_redis() -> fakeredis.FakeRedis:
    """In-process Redis with Lua support, isolated per test."""
    return fakeredis.FakeRedis(server=fakeredis.FakeServer())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_limiter(fake_redis, clock):
    """Build limiters sharing the per-test fake Redis and clock."""

    def _make(capacity: int = 5, refill_rate: float = 1.0, **kwargs) -> RedisTokenBucketRateLimiter:
        kwargs.setdefault("clock", clock)
        return RedisTokenBucketRateLimiter(
            fake_redis,
            capacity=capacity,
            refill_rate=refill_rate,
            **kwargs,
        )

    return _make
