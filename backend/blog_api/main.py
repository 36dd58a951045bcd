"""
Blog API Backend: FastAPI Application Factory
=============================================

What:  Builds the FastAPI application: middleware chain, error handlers
       and the route groups.
How:   create_app(settings, database) is a pure factory; it performs no I/O
       and reads no environment. The startup runner (server.py) owns the
       database connection and the process lifecycle.

Middleware Chain (request direction):
    [Request ID] → [Access Log]                 observability, no parsing
    → [CORS gate]                               reject bad origins first
    → [Body parsing] → [Cookie parsing]
    → [GZip]                                    responses ≥ compression_min_size
    → [Security headers]
    → [Rate limit]                              only requests that passed the above
    → Routes: GET /, GET /api/v1/

    Starlette runs middleware in REVERSE order of add_middleware(), so
    create_app() adds them innermost first.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from blog_api import __version__
from blog_api.config import Settings
from blog_api.database import DatabaseManager
from blog_api.exceptions import BlogApiError, error_response
from blog_api.middleware.cors import OriginGateMiddleware
from blog_api.middleware.logging import RequestLoggingMiddleware
from blog_api.middleware.parsing import BodyParserMiddleware, CookieParserMiddleware
from blog_api.middleware.rate_limit import RateLimiter, RateLimitMiddleware
from blog_api.middleware.request_id import RequestIDMiddleware, request_id_var
from blog_api.middleware.security import SecurityHeadersMiddleware
from blog_api.routes import health, v1
from blog_api.schemas.liveness import ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Log HTTP server start and stop; the database is handled by server.py."""
    settings: Settings = app.state.settings
    logger.info(
        "Blog API %s accepting connections (environment=%s)",
        __version__,
        settings.environment.value,
    )
    yield
    logger.info("HTTP server stopped accepting connections.")


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions escaping route handlers to JSON error responses.

        BlogApiError subclasses → their own status_code
        Exception (fallback)    → 500, details logged server-side only
    """

    @app.exception_handler(BlogApiError)
    async def handle_app_error(request: Request, exc: BlogApiError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s | Context: %s", rid, exc.message, exc.context)
        else:
            logger.warning("[%s] %s", rid, exc.message)
        return error_response(exc, rid)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred.",
                "request_id": rid,
            },
        )


def create_app(settings: Settings, database: Optional[DatabaseManager] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Immutable process configuration.
        database: Connection manager exposed to handlers through
                  blog_api.database.get_database. A fresh, unconnected
                  manager is attached when omitted (tests).
    """
    app = FastAPI(
        title="Blog API",
        version=__version__,
        lifespan=lifespan,
        responses={
            403: {"model": ErrorResponse, "description": "Origin not allowed"},
            429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        },
    )
    app.state.settings = settings
    app.state.database = database or DatabaseManager()

    # ── Register Middleware (innermost first) ─────────────────────────────
    # What: add_middleware() wraps, so the last one added sees requests first.
    #       Request order: RequestID → Logging → CORS gate → Body → Cookies
    #       → GZip → Security headers → Rate limit → routes
    # Why:  Everything inside GZip must leave body messages intact so its
    #       minimum_size check sees the whole body at once
    app.add_middleware(
        RateLimitMiddleware,
        limiter=RateLimiter(
            max_requests=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window,
        ),
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=settings.compression_min_size)
    app.add_middleware(CookieParserMiddleware)
    app.add_middleware(BodyParserMiddleware, limit=settings.body_limit)
    app.add_middleware(
        OriginGateMiddleware,
        environment=settings.environment,
        whitelist=settings.whitelist,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(v1.router, prefix=v1.API_V1_PREFIX)

    return app
