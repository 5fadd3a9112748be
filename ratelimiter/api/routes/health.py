from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from ratelimiter.adapters.redis_client import get_redis_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns a static payload without touching Redis.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check() -> JSONResponse:
    """Readiness check: verifies the shared store answers PING.

    Returns:
        JSONResponse: 200 with ``{"status": "ok"}`` when Redis responds,
            503 with ``{"status": "unavailable"}`` otherwise.
    """

    try:
        get_redis_client().ping()
    except RedisError as exc:
        logger.warning("health.redis_unreachable", extra={"error_type": type(exc).__name__})
        return JSONResponse(status_code=503, content={"status": "unavailable", "redis": "down"})

    return JSONResponse(status_code=200, content={"status": "ok", "redis": "up"})
