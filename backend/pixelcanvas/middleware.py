"""
Middleware for API rate limiting and security headers.
"""
import time
import logging
from collections import defaultdict, deque
from typing import Callable, Deque, Dict
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limit per client IP on paths under ``path_prefix``.

    A limit of 0 disables the check.
    """

    def __init__(self, app, max_requests: int = 120, window_seconds: int = 15,
                 path_prefix: str = "/api"):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.path_prefix = path_prefix
        self.requests: Dict[str, Deque[float]] = defaultdict(deque)
        self.last_cleanup = time.time()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self.max_requests <= 0 or not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()

        if now - self.last_cleanup > self.window_seconds:
            self._cleanup(now)
            self.last_cleanup = now

        window = self.requests[client_ip]
        self._expire(window, now)
        if len(window) >= self.max_requests:
            logger.warning(f"Rate limit exceeded for IP: {client_ip}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": "Rate limit exceeded", "message": "Too many requests. Please try again later."},
                headers={
                    "Retry-After": str(self.window_seconds),
                    "X-RateLimit-Limit": str(self.max_requests),
                    "X-RateLimit-Remaining": "0",
                },
            )
        window.append(now)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.max_requests - len(window)))
        return response

    def _expire(self, window: Deque[float], now: float):
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

    def _cleanup(self, now: float):
        for ip in list(self.requests.keys()):
            self._expire(self.requests[ip], now)
            if not self.requests[ip]:
                del self.requests[ip]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds the usual hardening headers to every response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
