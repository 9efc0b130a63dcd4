"""
ZIMMR Backend — Rate Limiting Middleware
=========================================

Per-IP sliding window: at most `rate_limit_requests` requests in the last
`rate_limit_window` seconds. Over the limit the client gets 429 with a
Retry-After header and the standard error body.

State is in-process; with several workers each one counts separately.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from zimmr.config import settings
from zimmr.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})

# Forget idle clients every this many requests
_SWEEP_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._seen = 0

    def _retry_after(self, hits: Deque[float], now: float) -> int:
        return int(hits[0] + settings.rate_limit_window - now) + 1

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()
        cutoff = now - settings.rate_limit_window
        hits = self._hits[client_ip]
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= settings.rate_limit_requests:
            error = RateLimitExceededError(retry_after=self._retry_after(hits, now))
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds",
                client_ip, len(hits), settings.rate_limit_window,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": error.message,
                    "details": error.context,
                },
                headers={"Retry-After": str(error.retry_after)},
            )

        hits.append(now)
        self._seen += 1
        if self._seen % _SWEEP_EVERY == 0:
            self._forget_idle(cutoff)
        return await call_next(request)

    def _forget_idle(self, cutoff: float) -> None:
        idle = [ip for ip, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for ip in idle:
            del self._hits[ip]
        if idle:
            logger.debug("Dropped rate limit state for %d idle clients", len(idle))
