"""
PromptLens Backend - Request ID Middleware
============================================

What:  Assigns an ID to each incoming request and echoes it in X-Request-ID.
How:   Reuses the client's X-Request-ID header when present, otherwise
       generates a short UUID. The value is stored in a ContextVar so any
       logger in the request's call stack can read it.
Who:   Applied to every request via Starlette middleware.

The frontend can send its own X-Request-ID when it retries
/api/analyze-image, so every attempt of one user action shares an ID.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local storage for the current request ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware that assigns a unique ID to each request for tracing."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

        # What: Store in ContextVar for access by loggers anywhere in the call stack
        # Reset in finally so the ID never leaks into the next request on this task
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
