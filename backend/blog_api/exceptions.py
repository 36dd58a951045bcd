"""
Blog API Backend: Exception Hierarchy
=====================================

What:  Application-specific exceptions for startup and per-request failures.
How:   Each exception carries a message, an optional context dict, an
       ErrorKind tag and the HTTP status it maps to. Startup code branches on
       the kind; the HTTP layer turns per-request errors into JSON responses.
Who:   Raised by config, database, CORS, rate limiting and body parsing;
       caught by the startup runner and the global handlers in main.py.

Exception Hierarchy:
    BlogApiError (base)                  → 500
    ├── ConfigurationError               → fatal at startup
    ├── DatabaseConnectionError          → connect/disconnect failure
    ├── CORSRejectionError               → 403, blocks only that request
    ├── RateLimitExceededError           → 429, blocks only that request
    └── PayloadError                     → 400 / 413 from body parsing

Kinds:
    Driver errors raised by pymongo during connect() are re-raised unchanged,
    so they carry no `kind` attribute. error_kind() maps them onto
    ErrorKind.CONNECTION so callers never need isinstance ladders.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pymongo.errors import PyMongoError
from starlette.responses import JSONResponse


class ErrorKind(str, Enum):
    """Tag used by callers to branch on what went wrong."""

    CONFIGURATION = "configuration"
    CONNECTION = "connection"
    CORS_REJECTION = "cors_rejection"
    RATE_LIMIT = "rate_limit"
    PAYLOAD = "payload"
    OTHER = "other"


class BlogApiError(Exception):
    """
    Base exception for all Blog API errors.

    Attributes:
        message:  Human-readable description (safe to return to clients)
        context:  Extra debug info, returned as `details` for client errors
    """

    kind: ErrorKind = ErrorKind.OTHER
    status_code: int = 500
    error_code: str = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(BlogApiError):
    """
    A required setting is missing or structurally malformed.

    Raised by load_settings() for bad environment values and by
    DatabaseManager.connect() when no database URI is configured.
    """

    kind = ErrorKind.CONFIGURATION
    error_code = "configuration_error"


class DatabaseConnectionError(BlogApiError):
    """
    The database connection could not be used, opened or closed.

    disconnect() wraps driver failures in this class using only the
    message text; the original exception is not chained.
    """

    kind = ErrorKind.CONNECTION
    error_code = "database_error"

    def __init__(
        self,
        message: str = "A database connection error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CORSRejectionError(BlogApiError):
    """
    A browser request came from an origin that is not allowed.

    HTTP: 403 Forbidden. Confined to the offending request.
    """

    kind = ErrorKind.CORS_REJECTION
    status_code = 403
    error_code = "cors_rejected"

    def __init__(self, origin: str, reason: Optional[str] = None):
        message = reason or f"CORS error: {origin} is not allowed by CORS"
        super().__init__(message=message, context={"origin": origin})
        self.origin = origin


class RateLimitExceededError(BlogApiError):
    """
    A client exceeded its request allowance for the current window.

    HTTP: 429 Too Many Requests, with a Retry-After header.
    """

    kind = ErrorKind.RATE_LIMIT
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "You have sent too many requests in a given amount of time. "
            "Please try again later."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class PayloadError(BlogApiError):
    """Request body could not be parsed (400) or exceeds the size limit (413)."""

    kind = ErrorKind.PAYLOAD
    status_code = 400
    error_code = "invalid_payload"

    def __init__(
        self,
        message: str = "Request body could not be parsed",
        status_code: int = 400,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        self.status_code = status_code
        if status_code == 413:
            self.error_code = "payload_too_large"


def error_kind(exc: BaseException) -> ErrorKind:
    """Classify any exception raised on the startup path."""
    if isinstance(exc, BlogApiError):
        return exc.kind
    if isinstance(exc, PyMongoError):
        return ErrorKind.CONNECTION
    return ErrorKind.OTHER


def error_response(exc: BlogApiError, request_id: str = "") -> JSONResponse:
    """
    Render an application error as the standard JSON error body.

    Server-side errors (5xx) get a generic message; their details are only
    logged. Client errors return the message and context as `details`.
    """
    headers = {}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(exc.retry_after)

    if exc.status_code >= 500:
        content = {
            "error": exc.error_code,
            "message": "An internal error occurred. Please try again later.",
            "request_id": request_id,
        }
    else:
        content = {
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.context,
            "request_id": request_id,
        }
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)
