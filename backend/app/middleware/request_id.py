"""
Neighborhood Hub Backend — Request ID Middleware
================================================

What:  Gives every request a short correlation id.
How:   Reuses the caller's `X-Request-ID` header when present, otherwise
       generates one; stores it in a ContextVar for loggers and error
       handlers, and echoes it on the response.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Client-supplied ids are capped so they can't bloat log lines
        rid = request.headers.get(REQUEST_ID_HEADER, "")[:64] or str(uuid.uuid4())[:8]
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
