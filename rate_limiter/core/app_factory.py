"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from __future__ import annotations

from fastapi import FastAPI

from rate_limiter.api.routes import health_router, ping_router
from rate_limiter.core.config import settings
from rate_limiter.core.exception_handlers import setup_exception_handlers
from rate_limiter.core.logging import configure_logging
from rate_limiter.core.middleware import request_id_middleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Rate Limiter",
        description=(
            "Per-client rate limiting in front of protected routes. A client "
            "must wait a minimum interval after each request, admitted or not."
        ),
        version="0.1.0",
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(ping_router, prefix="/v1")
    app.include_router(health_router)

    return app
