"""
Neighborhood Hub Backend — Rate Limiting Middleware
===================================================

What:  Per-IP sliding-window limit (`rate_limit_requests` per
       `rate_limit_window` seconds).
Why:   Every map view costs a Mapbox geocoding request; an unthrottled client
       could burn the monthly quota.
How:   In-memory timestamps per IP. Fine for one uvicorn process; several
       workers would each enforce their own window.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings
from app.exceptions import RateLimitExceededError
from app.middleware.request_id import REQUEST_ID_HEADER

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    # Forget idle IPs every this many tracked requests
    CLEANUP_EVERY = 1000

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window_start = now - settings.rate_limit_window

        timestamps = self._requests[client_ip]
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

        if len(timestamps) >= settings.rate_limit_requests:
            retry_after = int(timestamps[0] + settings.rate_limit_window - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(timestamps),
                settings.rate_limit_window,
            )
            # Raised exceptions never reach the app's handlers from inside
            # BaseHTTPMiddleware, so the error body is built here. This runs
            # before RequestIDMiddleware; only a caller-supplied id is known.
            exc = RateLimitExceededError(retry_after=retry_after)
            content = {
                "error": "rate_limit_exceeded",
                "message": exc.message,
                "details": {"retryAfter": retry_after},
            }
            rid = request.headers.get(REQUEST_ID_HEADER, "")[:64]
            if rid:
                content["requestId"] = rid
            return JSONResponse(
                status_code=429,
                content=content,
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)
        self._seen += 1
        if self._seen % self.CLEANUP_EVERY == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive = [ip for ip, ts in self._requests.items() if not ts or ts[-1] <= window_start]
        for ip in inactive:
            del self._requests[ip]
        if inactive:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive))
