from __future__ import annotations

from fastapi import APIRouter, Depends, Path
from fastapi.responses import JSONResponse

from ratelimiter.core.rate_limit import (
    build_rate_limit_headers,
    enforce_rate_limit,
    get_rate_limiter,
)
from ratelimiter.schemas.limits import RateLimitDecision

router = APIRouter(tags=["Rate Limits"])


@router.post(
    "/limits/{identifier}",
    response_model=RateLimitDecision,
    responses={429: {"model": RateLimitDecision, "description": "Bucket is empty"}},
)
def check_limit(
    identifier: str = Path(..., min_length=1, max_length=512, description="Client identifier to evaluate"),
) -> JSONResponse:
    """Consume one token for ``identifier`` and return the decision.

    Lets services that cannot reach Redis directly share the same buckets.
    Store failures propagate as ``UnavailableError`` and are rendered as 503
    by the global exception handler; this endpoint never guesses a decision.

    Returns:
        JSONResponse: 200 when allowed, 429 when rejected, body is a
            RateLimitDecision.
    """

    result = get_rate_limiter().allow(identifier)
    decision = RateLimitDecision.from_result(result)
    return JSONResponse(
        status_code=200 if result.allowed else 429,
        content=decision.model_dump(),
        headers=build_rate_limit_headers(result),
    )


@router.get("/ping", dependencies=[Depends(enforce_rate_limit)])
def ping() -> dict:
    """Sample endpoint guarded by the per-client token bucket."""

    return {"pong": True}
