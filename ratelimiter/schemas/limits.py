"""Response schemas for the rate limit endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ratelimiter.adapters.rate_limit.base import RateLimitResult


class RateLimitDecision(BaseModel):
    """Decision returned by ``POST /v1/limits/{identifier}``."""

    allowed: bool = Field(..., description="Whether the unit of work may proceed")
    tokens_before: float = Field(..., description="Tokens available before this call, after refill")
    tokens_left: float = Field(..., description="Tokens remaining after this call")
    refill_amount: float = Field(..., description="Tokens refilled since the previous call")
    capacity: int = Field(..., description="Configured bucket capacity")
    retry_after_seconds: int | None = Field(
        None,
        description="Seconds until a token is available (only when rejected)",
    )

    @classmethod
    def from_result(cls, result: RateLimitResult) -> "RateLimitDecision":
        return cls(
            allowed=result.allowed,
            tokens_before=result.tokens_before,
            tokens_left=result.tokens_left,
            refill_amount=result.refill_amount,
            capacity=result.capacity,
            retry_after_seconds=result.retry_after_seconds,
        )
