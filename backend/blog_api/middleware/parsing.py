"""
Blog API Backend: Body and Cookie Parsing Middleware
====================================================

What:  Parses JSON and URL-encoded request bodies and the Cookie header up
       front, storing the results on request.state (`body`, `cookies`).
Why:   Malformed or oversized bodies are rejected in one place, before the
       rate limiter or any route sees the request.
How:   Pure ASGI middleware. The body is buffered (up to `limit` bytes),
       parsed, and then replayed to downstream apps so request.json() and
       friends keep working.

Errors:
    Malformed JSON        → 400 invalid_payload
    Body over the limit   → 413 payload_too_large
    Other content types   → passed through untouched, request.state.body = None
"""

import json
import logging
from typing import Any, Optional
from urllib.parse import parse_qsl

from starlette.datastructures import Headers
from starlette.requests import cookie_parser
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from blog_api.exceptions import PayloadError, error_response
from blog_api.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

JSON_TYPES = ("application/json",)
FORM_TYPE = "application/x-www-form-urlencoded"


class BodyParserMiddleware:
    def __init__(self, app: ASGIApp, limit: int = 100 * 1024) -> None:
        self.app = app
        self.limit = limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        headers = Headers(scope=scope)
        content_type = headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type not in JSON_TYPES and content_type != FORM_TYPE:
            state["body"] = None
            await self.app(scope, receive, send)
            return

        try:
            body = await self._read_body(headers, receive)
            if body is None:
                # Client went away mid-body; nothing to answer
                logger.debug("[%s] Client disconnected while sending the body", request_id_var.get(""))
                return
            state["body"] = self.parse_body(content_type, body)
        except PayloadError as exc:
            rid = request_id_var.get("")
            logger.warning("[%s] Rejected request body: %s", rid, exc.message)
            response = error_response(exc, rid)
            await response(scope, receive, send)
            return

        await self.app(scope, _replay(body, receive), send)

    async def _read_body(self, headers: Headers, receive: Receive) -> Optional[bytes]:
        """Buffer the whole body. Returns None if the client disconnects first."""
        declared = headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.limit:
            raise self._too_large()

        chunks = []
        size = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return None
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > self.limit:
                raise self._too_large()
            chunks.append(chunk)
            more_body = message.get("more_body", False)
        return b"".join(chunks)

    def _too_large(self) -> PayloadError:
        return PayloadError(
            "Request body is too large",
            status_code=413,
            context={"limit": self.limit},
        )

    @staticmethod
    def parse_body(content_type: str, body: bytes) -> Any:
        if not body:
            return {}
        if content_type == FORM_TYPE:
            try:
                return dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True))
            except UnicodeDecodeError:
                raise PayloadError("Form body is not valid UTF-8") from None
        try:
            return json.loads(body)
        except ValueError:
            raise PayloadError("Request body is not valid JSON") from None


def _replay(body: bytes, receive: Receive) -> Receive:
    """Hand the buffered body to the next app once, then defer to `receive`."""
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class CookieParserMiddleware:
    """Parses the Cookie header into request.state.cookies (a dict)."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            header: Optional[str] = Headers(scope=scope).get("cookie")
            scope.setdefault("state", {})["cookies"] = cookie_parser(header) if header else {}
        await self.app(scope, receive, send)
