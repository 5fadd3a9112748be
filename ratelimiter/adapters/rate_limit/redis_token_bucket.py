"""Redis-backed token bucket rate limiter.

All bucket state lives in Redis and every decision is made by a single Lua
script invocation, so any number of processes can share one quota per
identifier without coordinating locally.

Notes:
- Stateless after construction: safe to share across threads.
- No retries and no local fallback; store failures surface as
  ``UnavailableError`` and the caller picks its fail-open/fail-closed policy.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable

from redis import Redis
from redis.exceptions import RedisError, ResponseError

from ratelimiter.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from ratelimiter.adapters.rate_limit.scripts import (
    CORRUPT_STATE_MARKER,
    MAX_TTL_SECONDS,
    TOKEN_BUCKET_LUA,
    TOKEN_SCALE,
)
from ratelimiter.core.errors import (
    ConfigurationError,
    CorruptStateError,
    UnavailableError,
    ValidationAppError,
)
from ratelimiter.core.logging import hash_identifier

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "rate_limit:"


class RedisTokenBucketRateLimiter(AbstractRateLimiter):
    """Token bucket limiter evaluated atomically inside Redis.

    Each identifier owns a hash ``{key_prefix}{identifier}`` with fields
    ``tokens`` and ``last_refill`` (milliseconds). Missing hashes are full
    buckets. Refill is computed lazily from elapsed time on every call and the
    hash expires after ``ceil(capacity / refill_rate) * 2`` seconds of
    inactivity.
    """

    def __init__(
        self,
        client: Redis,
        *,
        capacity: int,
        refill_rate: float,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter and register the bucket script.

        Registration is local: the script is sent to Redis lazily with
        EVALSHA/SCRIPT LOAD on the first call.

        Args:
            client: Redis client shared across callers.
            capacity: Maximum tokens per bucket (burst size), integer >= 1.
            refill_rate: Tokens added per second, > 0.
            key_prefix: Namespace prepended to identifiers.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ConfigurationError: If capacity, refill_rate or key_prefix are
                invalid, or the resulting TTL exceeds MAX_TTL_SECONDS.
        """
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ConfigurationError(
                code="invalid_rate_limit_config",
                message="capacity must be an integer >= 1",
                details={"field": "capacity", "min_value": 1, "actual_value": capacity},
            )
        if isinstance(refill_rate, bool) or not isinstance(refill_rate, (int, float)) or not refill_rate > 0:
            raise ConfigurationError(
                code="invalid_rate_limit_config",
                message="refill_rate must be a number > 0",
                details={"field": "refill_rate", "min_value": 0, "actual_value": refill_rate},
            )
        if math.isinf(refill_rate):
            raise ConfigurationError(
                code="invalid_rate_limit_config",
                message="refill_rate must be finite",
                details={"field": "refill_rate", "actual_value": refill_rate},
            )
        if not key_prefix:
            raise ConfigurationError(
                code="invalid_rate_limit_config",
                message="key_prefix must be a non-empty string",
                details={"field": "key_prefix"},
            )

        refill_seconds = capacity / refill_rate
        if not math.isfinite(refill_seconds) or math.ceil(refill_seconds) * 2 > MAX_TTL_SECONDS:
            raise ConfigurationError(
                code="invalid_rate_limit_config",
                message=f"capacity / refill_rate yields a bucket TTL above {MAX_TTL_SECONDS} seconds",
                details={"field": "refill_rate", "actual_value": refill_rate},
            )

        self._capacity = capacity
        self._refill_rate = float(refill_rate)
        self._key_prefix = key_prefix
        self._clock = clock
        self._client = client
        self._ttl_seconds = math.ceil(refill_seconds) * 2
        self._script = client.register_script(TOKEN_BUCKET_LUA)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def refill_rate(self) -> float:
        return self._refill_rate

    @property
    def ttl_seconds(self) -> int:
        """Inactivity period after which a bucket record expires."""
        return self._ttl_seconds

    def bucket_key(self, identifier: str) -> str:
        return f"{self._key_prefix}{identifier}"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _retry_after(self, tokens_left: float) -> int:
        """Seconds until one whole token has been refilled."""
        return max(1, math.ceil((1 - tokens_left) / self._refill_rate))

    def _decode(self, raw: Any, key_hash: str) -> RateLimitResult:
        """Convert the script's scaled integer reply into a RateLimitResult.

        Raises:
            UnavailableError: If the reply does not have the expected shape.
        """
        try:
            allowed_flag, left_scaled, before_scaled, refill_scaled = (int(v) for v in raw)
        except (TypeError, ValueError) as exc:
            logger.error(
                "rate_limit.malformed_reply",
                extra={"key_hash": key_hash, "reply_type": type(raw).__name__},
            )
            raise UnavailableError(
                code="rate_limit_store_unavailable",
                message="Rate limit store returned a malformed reply",
                details={"key_hash": key_hash, "error_type": type(exc).__name__},
            ) from exc

        allowed = allowed_flag == 1
        tokens_left = left_scaled / TOKEN_SCALE
        return RateLimitResult(
            allowed=allowed,
            tokens_before=before_scaled / TOKEN_SCALE,
            tokens_left=tokens_left,
            refill_amount=refill_scaled / TOKEN_SCALE,
            capacity=self._capacity,
            retry_after_seconds=None if allowed else self._retry_after(tokens_left),
        )

    def allow(self, identifier: str) -> RateLimitResult:
        """Evaluate the bucket for ``identifier`` and consume one token if possible.

        Exactly one script invocation is made against Redis per call.

        Args:
            identifier: Non-empty client identifier.

        Returns:
            RateLimitResult with the decision and token accounting.

        Raises:
            ValidationAppError: If identifier is empty.
            CorruptStateError: If the stored bucket record is malformed.
            UnavailableError: If Redis is unreachable or the script fails.
        """
        if not identifier or not isinstance(identifier, str):
            raise ValidationAppError(
                code="invalid_identifier",
                message="identifier must be a non-empty string",
            )

        key = self.bucket_key(identifier)
        key_hash = hash_identifier(key)

        try:
            raw = self._script(
                keys=[key],
                args=[self._capacity, self._refill_rate, self._now_ms(), self._ttl_seconds],
            )
        except ResponseError as exc:
            if CORRUPT_STATE_MARKER in str(exc):
                logger.error("rate_limit.state_corrupt", extra={"key_hash": key_hash})
                raise CorruptStateError(
                    code="rate_limit_state_corrupt",
                    message="Stored rate limit bucket is malformed",
                    details={"key_hash": key_hash},
                ) from exc
            logger.error(
                "rate_limit.script_failed",
                extra={"key_hash": key_hash, "error_msg": str(exc)},
            )
            raise UnavailableError(
                code="rate_limit_store_unavailable",
                message="Rate limit script failed to execute",
                details={"key_hash": key_hash, "error_type": type(exc).__name__},
            ) from exc
        except RedisError as exc:
            logger.error(
                "rate_limit.store_unavailable",
                extra={"key_hash": key_hash, "error_type": type(exc).__name__},
            )
            raise UnavailableError(
                code="rate_limit_store_unavailable",
                message="Rate limit store is unavailable",
                details={"key_hash": key_hash, "error_type": type(exc).__name__},
            ) from exc

        result = self._decode(raw, key_hash)
        logger.debug(
            "rate_limit.evaluated",
            extra={
                "key_hash": key_hash,
                "allowed": result.allowed,
                "tokens_before": result.tokens_before,
                "tokens_left": result.tokens_left,
                "refill_amount": result.refill_amount,
            },
        )
        return result
