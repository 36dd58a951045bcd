"""
Blog API Backend: Rate Limiting
===============================

What:  Per-client fixed window rate limiter and the middleware that applies it.
Why:   Protects the API from abusive clients without authentication.
How:   Each client key (the source address by default) owns a window record
       {count, window_start}. A request increments the count; the first
       request after the window elapses resets it to 1.
When:  Last middleware before the routes, so only requests that passed the
       cheaper checks (CORS, body parsing) consume a slot.

Algorithm: Fixed Window Counter
    1. Look up the key's window; start a new one if missing or elapsed
    2. Increment the count
    3. count > max_requests → RateLimitExceededError (429, Retry-After)

Concurrency:
    The read-increment-compare sequence is the only shared mutable state in
    the request path. Under asyncio it never awaits, so it is atomic by
    construction; the threading.Lock keeps it atomic if the limiter is ever
    shared across threads.

Production Upgrade Path:
    In-memory state is per process. Multi-worker deployments need a shared
    store (e.g. Redis INCR with a TTL per window).
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from blog_api.exceptions import RateLimitExceededError, error_response
from blog_api.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    key: str
    count: int
    window_start: float


class RateLimiter:
    """
    In-memory fixed window counter keyed by client identity.

    Args:
        max_requests:   Allowed requests per window
        window_seconds: Window duration
        clock:          Monotonic time source (injectable for tests)
    """

    # Expired windows are pruned every CLEANUP_INTERVAL checks
    CLEANUP_INTERVAL = 1000

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()
        self._checks = 0

    def check(self, key: str) -> RateLimitWindow:
        """
        Count one request for `key`.

        Returns:
            A snapshot of the key's window after this request.

        Raises:
            RateLimitExceededError: the request is over the limit. The caller
                must reject it; nothing is retried here.
        """
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)
            # What: Start a fresh window when none exists or the old one elapsed
            if window is None or now - window.window_start >= self.window_seconds:
                window = RateLimitWindow(key=key, count=0, window_start=now)
                self._windows[key] = window
            window.count += 1
            # Why: The caller reads the window outside the lock
            snapshot = RateLimitWindow(window.key, window.count, window.window_start)

            # Why: Prevents unbounded growth from clients that never return
            self._checks += 1
            if self._checks % self.CLEANUP_INTERVAL == 0:
                self._cleanup_expired(now)

        if snapshot.count > self.max_requests:
            raise RateLimitExceededError(
                retry_after=self.reset_after(snapshot, now),
                context={"limit": self.max_requests, "window_seconds": self.window_seconds},
            )
        return snapshot

    def remaining(self, window: RateLimitWindow) -> int:
        return max(self.max_requests - window.count, 0)

    def reset_after(self, window: RateLimitWindow, now: Optional[float] = None) -> int:
        """Whole seconds until `window` expires (at least 1)."""
        if now is None:
            now = self._clock()
        return max(math.ceil(window.window_start + self.window_seconds - now), 1)

    def get_window(self, key: str) -> Optional[RateLimitWindow]:
        return self._windows.get(key)

    def _cleanup_expired(self, now: float) -> None:
        """Drop windows that have fully elapsed. Caller holds the lock."""
        expired = [
            key for key, window in self._windows.items()
            if now - window.window_start >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]

        if expired:
            logger.debug("Cleaned up %d expired rate limit windows", len(expired))


def client_address(request: Request) -> str:
    """Default key: the peer address (behind a proxy this is the proxy's)."""
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware:
    """
    Applies a RateLimiter to every request.

    Response headers (IETF draft "RateLimit header fields"):
        RateLimit-Limit, RateLimit-Remaining, RateLimit-Reset
    Over the limit:
        HTTP 429 with Retry-After and a JSON error body

    Pure ASGI: only the http.response.start message is touched, so
    downstream body messages reach GZipMiddleware exactly as sent.
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter: RateLimiter,
        key_func: Callable[[Request], str] = client_address,
    ) -> None:
        self.app = app
        self.limiter = limiter
        self.key_func = key_func

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        key = self.key_func(Request(scope))

        try:
            window = self.limiter.check(key)
        except RateLimitExceededError as exc:
            rid = request_id_var.get("")
            logger.warning(
                "Rate limit exceeded for %s: more than %d requests in %ss window",
                key,
                self.limiter.max_requests,
                self.limiter.window_seconds,
                extra={"client_key": key, "request_id": rid},
            )
            response = error_response(exc, rid)
            self._set_headers(response.headers, remaining=0, reset=exc.retry_after)
            await response(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                # What: Reset is computed when the response starts, not when
                #       the request was counted
                self._set_headers(
                    MutableHeaders(scope=message),
                    remaining=self.limiter.remaining(window),
                    reset=self.limiter.reset_after(window),
                )
            await send(message)

        await self.app(scope, receive, send_with_headers)

    def _set_headers(self, headers: MutableHeaders, remaining: int, reset: int) -> None:
        headers["RateLimit-Limit"] = str(self.limiter.max_requests)
        headers["RateLimit-Remaining"] = str(remaining)
        headers["RateLimit-Reset"] = str(reset)
