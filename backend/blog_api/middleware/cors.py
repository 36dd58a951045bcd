"""
Blog API Backend: CORS Origin Gate
==================================

What:  Decides per request whether a browser origin may be served, and
       rejects disallowed origins before any other middleware runs.
How:   decide() is a pure function of (origin, environment, whitelist).
       OriginGateMiddleware extends Starlette's CORSMiddleware: denied
       origins get a 403 JSON error; allowed ones fall through to the
       standard CORS header handling (including preflight).

Decision Rules (first match wins):
    1. environment == development  → allow any origin
    2. no Origin header            → allow (same-origin or non-browser client)
    3. origin in whitelist         → allow
    4. otherwise                   → deny, reason names the origin

The whitelist is small and fixed for the process lifetime, so the check
runs on every request without caching.
"""

import logging
from dataclasses import dataclass
from typing import AbstractSet, Iterable, Optional

from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from blog_api.config import Environment
from blog_api.exceptions import CORSRejectionError, error_response
from blog_api.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CORSDecision:
    origin: Optional[str]
    allowed: bool
    reason: Optional[str] = None


def decide(
    origin: Optional[str],
    environment: Environment,
    whitelist: AbstractSet[str],
) -> CORSDecision:
    if environment is Environment.DEVELOPMENT:
        return CORSDecision(origin=origin, allowed=True, reason="development environment")
    if not origin:
        return CORSDecision(origin=origin, allowed=True, reason="no origin header")
    if origin in whitelist:
        return CORSDecision(origin=origin, allowed=True, reason="whitelisted origin")
    return CORSDecision(
        origin=origin,
        allowed=False,
        reason=f"CORS error: {origin} is not allowed by CORS",
    )


def check_origin(
    origin: Optional[str],
    environment: Environment,
    whitelist: AbstractSet[str],
) -> CORSDecision:
    """Like decide(), but raises CORSRejectionError for a denied origin."""
    decision = decide(origin, environment, whitelist)
    if not decision.allowed:
        raise CORSRejectionError(origin=origin or "", reason=decision.reason)
    return decision


class OriginGateMiddleware(CORSMiddleware):
    """
    Starlette CORS handling with a hard reject for disallowed origins.

    Plain CORSMiddleware only omits the Access-Control-* headers for a bad
    origin and still runs the request. Here the request never reaches the
    body parser, the rate limiter or the route.
    """

    def __init__(
        self,
        app: ASGIApp,
        environment: Environment,
        whitelist: Iterable[str],
    ) -> None:
        self.environment = environment
        self.whitelist = frozenset(whitelist)
        super().__init__(
            app,
            allow_origins=sorted(self.whitelist),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID", "Retry-After"],
        )

    def is_allowed_origin(self, origin: str) -> bool:
        return decide(origin, self.environment, self.whitelist).allowed

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            origin = Headers(scope=scope).get("origin")
            try:
                check_origin(origin, self.environment, self.whitelist)
            except CORSRejectionError as exc:
                rid = request_id_var.get("")
                logger.warning("[%s] %s", rid, exc.message, extra={"origin": exc.origin})
                response = error_response(exc, rid)
                await response(scope, receive, send)
                return
        await super().__call__(scope, receive, send)
