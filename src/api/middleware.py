"""
JSON request body parsing.

Parses application/json bodies once for every route and exposes the result
as request.state.json_body. Only objects and arrays are accepted at the top
level. The raw bytes are replayed to the application,
so FastAPI body parameters keep working.
"""
import json
import logging
from typing import Any

from fastapi import Request
from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.api.config import DEFAULT_JSON_BODY_LIMIT

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"


def is_json_request(scope: Scope) -> bool:
    """Check whether the request declares a JSON body."""
    content_type = Headers(scope=scope).get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == JSON_MEDIA_TYPE


class JSONBodyMiddleware:
    """ASGI middleware that parses JSON request bodies."""

    def __init__(self, app: ASGIApp, limit: int = DEFAULT_JSON_BODY_LIMIT):
        self.app = app
        self.limit = limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not is_json_request(scope):
            await self.app(scope, receive, send)
            return

        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body += message.get("body", b"")
            more_body = message.get("more_body", False)
            if len(body) > self.limit:
                logger.debug("Rejected JSON body larger than %d bytes", self.limit)
                response = JSONResponse({"detail": "Request body too large"}, status_code=413)
                await response(scope, receive, send)
                return

        if body:
            try:
                parsed = json.loads(body)
            except ValueError as e:
                logger.debug("Rejected malformed JSON body: %s", e)
                parsed = None
            if not isinstance(parsed, (dict, list)):
                # Only objects and arrays are accepted at the top level
                response = JSONResponse({"detail": "Invalid JSON body"}, status_code=400)
                await response(scope, receive, send)
                return
        else:
            parsed = {}

        scope.setdefault("state", {})["json_body"] = parsed

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)


def get_json_body(request: Request) -> Any:
    """FastAPI dependency returning the parsed JSON body, or None."""
    return getattr(request.state, "json_body", None)
