"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from __future__ import annotations

from fastapi import FastAPI

from ratelimiter.api.routes import health_router, limits_router
from ratelimiter.core.config import settings
from ratelimiter.core.exception_handlers import setup_exception_handlers
from ratelimiter.core.logging import configure_logging
from ratelimiter.core.middleware import request_id_middleware

OPENAPI_TAGS = [
    {
        "name": "Rate Limits",
        "description": "Token-bucket decisions backed by a shared Redis store.",
    },
    {
        "name": "Health",
        "description": "Liveness and readiness checks.",
    },
]


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Token Bucket Rate Limiter",
        description=(
            "Distributed token-bucket rate limiting. Each identifier owns a "
            "bucket stored in Redis and evaluated atomically by a Lua script, "
            "so every worker shares the same quota."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        openapi_tags=OPENAPI_TAGS,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(limits_router, prefix="/v1")
    app.include_router(health_router)

    return app
