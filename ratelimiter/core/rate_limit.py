"""Rate limiting dependency for FastAPI routes.

This module wires the Redis token bucket into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Shared quota: every worker process evaluates the same Redis bucket.
- Explicit failure policy: when Redis is unavailable the configured
  fail-open/fail-closed behaviour applies here, never inside the limiter.

Keying strategy:
- One bucket per API key (``X-API-Key`` header).
- If the API key is missing, fall back to the client IP.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, Response, status

from ratelimiter.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from ratelimiter.adapters.rate_limit.redis_token_bucket import RedisTokenBucketRateLimiter
from ratelimiter.adapters.redis_client import get_redis_client
from ratelimiter.core.config import settings
from ratelimiter.core.errors import UnavailableError
from ratelimiter.core.logging import hash_identifier

logger = logging.getLogger(__name__)


_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[int, float, str] | None = None


def get_rate_limiter() -> AbstractRateLimiter:
    """Return a process-wide rate limiter instance.

    The limiter holds no bucket state, but caching it keeps the registered
    script (and its SHA) around. If configuration changes (primarily in
    tests), the limiter is rebuilt.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    global _limiter, _limiter_config

    config = (
        settings.app.rate_limit_capacity,
        settings.app.rate_limit_refill_rate,
        settings.app.rate_limit_key_prefix,
    )

    if _limiter is None or _limiter_config != config:
        _limiter = RedisTokenBucketRateLimiter(
            get_redis_client(),
            capacity=settings.app.rate_limit_capacity,
            refill_rate=settings.app.rate_limit_refill_rate,
            key_prefix=settings.app.rate_limit_key_prefix,
        )
        _limiter_config = config

    return _limiter


def build_rate_limit_identifier(request: Request, x_api_key: str | None) -> str:
    """Build the limiter identifier for the current request.

    Args:
        request: FastAPI request.
        x_api_key: API key value from the X-API-Key header.

    Returns:
        str: Namespaced identifier (``api_key:...`` or ``ip:...``).
    """

    if x_api_key:
        return f"api_key:{x_api_key}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def build_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Translate a decision into standard throttling headers."""

    headers = {
        "X-RateLimit-Limit": str(result.capacity),
        "X-RateLimit-Remaining": str(result.remaining),
    }
    if result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def enforce_rate_limit(
    request: Request,
    response: Response,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency enforcing the token bucket.

    When enabled, consumes one token from the requester's bucket. If the
    bucket is empty, raises HTTP 429. If Redis cannot be reached, either lets
    the request through (fail-open) or raises HTTP 503 (fail-closed).

    A plain def: FastAPI runs it in the threadpool, off the event loop,
    while allow() blocks on Redis.

    Args:
        request: FastAPI request.
        response: Response whose headers carry the X-RateLimit-* values
            for allowed requests.
        x_api_key: API key from X-API-Key header.

    Raises:
        HTTPException: 429 when throttled, 503 when the store is unavailable
            and the limiter is configured to fail closed.
    """

    if not settings.app.rate_limit_enabled:
        return

    limiter = get_rate_limiter()
    identifier = build_rate_limit_identifier(request, x_api_key)
    key_hash = hash_identifier(identifier)
    key_type = "api_key" if x_api_key else "ip"

    try:
        result = limiter.allow(identifier)
    except UnavailableError as exc:
        if settings.app.rate_limit_fail_open:
            logger.warning(
                "rate_limit.fail_open",
                extra={"key_type": key_type, "key_hash": key_hash, "error_code": exc.code},
            )
            return
        logger.error(
            "rate_limit.fail_closed",
            extra={"key_type": key_type, "key_hash": key_hash, "error_code": exc.code},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rate limiting is temporarily unavailable. Try again later.",
        ) from exc

    if result.allowed:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_type": key_type,
                "key_hash": key_hash,
                "capacity": result.capacity,
                "tokens_left": result.tokens_left,
            },
        )
        if settings.app.rate_limit_include_headers:
            response.headers.update(build_rate_limit_headers(result))
        return

    logger.warning(
        "rate_limit.rejected",
        extra={
            "key_type": key_type,
            "key_hash": key_hash,
            "capacity": result.capacity,
            "tokens_before": result.tokens_before,
            "retry_after_s": result.retry_after_seconds,
        },
    )

    headers = build_rate_limit_headers(result) if settings.app.rate_limit_include_headers else None

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers,
    )
