# bookkeeper/middleware.py
# HTTP edge: per-client rate limiting, request size limit and request logging

import logging
import threading
import time
from typing import Callable, Dict, Tuple

from fastapi import FastAPI, HTTPException, Request
from starlette.datastructures import Headers

from .config import Settings
from .errors import error_response

logger = logging.getLogger(__name__)

RATE_LIMITED_PREFIX = "/api/"


class RateLimiter:
    """Fixed-window request counter keyed by client address."""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._last_purge = clock()
        self._lock = threading.Lock()

    def hit(self, key: str) -> Tuple[bool, int, int]:
        """Count one request; returns ``(allowed, remaining, seconds_until_reset)``."""
        now = self._clock()
        with self._lock:
            if now - self._last_purge >= self.window_seconds:
                self._purge(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
        reset_in = max(0, int(started + self.window_seconds - now))
        return count <= self.max_requests, max(0, self.max_requests - count), reset_in

    def _purge(self, now: float):
        # Caller holds the lock
        self._windows = {
            key: window for key, window in self._windows.items()
            if now - window[0] < self.window_seconds
        }
        self._last_purge = now

    def reset(self):
        with self._lock:
            self._windows.clear()
            self._last_purge = self._clock()


class PayloadTooLarge(HTTPException):
    def __init__(self, max_body_bytes: int):
        super().__init__(status_code=413, detail=f"Request body exceeds {max_body_bytes} bytes")


class BodySizeLimit:
    """ASGI middleware rejecting request bodies above ``max_body_bytes``.

    Content-Length is checked up front; bodies without one (chunked uploads)
    are counted as they are received.
    """

    def __init__(self, app, settings: Settings):
        self.app = app
        self.settings = settings

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = self.settings.max_body_bytes
        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > limit:
            await self._reject(scope, receive, send, limit)
            return

        received = 0
        response_started = False

        async def counting_receive():
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    raise PayloadTooLarge(limit)
            return message

        async def tracking_send(message):
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, counting_receive, tracking_send)
        except PayloadTooLarge:
            # Normally answered by the HTTPException handler; this covers reads outside a route
            if response_started:
                raise
            await self._reject(scope, receive, send, limit)

    async def _reject(self, scope, receive, send, limit: int):
        logger.warning("Rejected request body over %d bytes on %s", limit, scope.get("path"))
        response = error_response(413, f"Request body exceeds {limit} bytes", "Payload too large")
        await response(scope, receive, send)


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def install_middleware(app: FastAPI, settings: Settings):
    """Register the edge middleware; the rate limiter lives on ``app.state``."""
    app.state.rate_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if not request.url.path.startswith(RATE_LIMITED_PREFIX):
            return await call_next(request)
        allowed, remaining, reset_in = request.app.state.rate_limiter.hit(client_key(request))
        if not allowed:
            logger.warning("Rate limit exceeded for %s on %s", client_key(request), request.url.path)
            return error_response(
                429, "Too many requests, please try again later", "Rate limit exceeded",
                headers={"Retry-After": str(reset_in)},
            )
        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response

    app.add_middleware(BodySizeLimit, settings=settings)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %d (%.1f ms)", request.method, request.url.path,
                    response.status_code, elapsed_ms)
        return response
