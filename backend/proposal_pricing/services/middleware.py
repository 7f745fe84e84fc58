"""Request tracing, security headers and rate limiting for the pricing API."""
import time
import uuid
import logging
import collections
from typing import Callable, Deque, Dict, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from proposal_pricing import config

logger = logging.getLogger("proposal-pricing.api")

SKIP_LOG_PATHS = {"/health"}


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with a uuid4 request id (request.state.request_id and
    the X-Request-ID response header), reports handler time in X-Process-Time
    and logs one line per priced or market request. Health checks are not logged.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = str(uuid.uuid4())
        start_time = time.perf_counter()
        request.state.request_id = request_id

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if request.url.path not in SKIP_LOG_PATHS:
            logger.info(
                "request completed",
                extra={
                    "http_method": request.method,
                    "http_path": request.url.path,
                    "http_status": response.status_code,
                    "request_id": request_id,
                    "duration_ms": duration_ms,
                },
            )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Content-Security-Policy"] = "default-src 'self'"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


class SlidingWindowCounterStore:
    """
    Per-key sliding-window request counter.

    Owned by the application lifespan (app.state.rate_limit_store) so each app
    instance, and each test client, gets its own counters.
    """

    def __init__(
        self,
        limit: int = config.RATE_LIMIT_PER_MINUTE,
        window_seconds: float = config.RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        # {bucket_key: deque of timestamps}; keys with no live hits are dropped
        self._windows: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def hit(self, key: str) -> Tuple[bool, int]:
        """
        Record a request for key.

        Returns:
            (allowed, retry_after_seconds). Rejected requests are not recorded.
        """
        now = self._clock()
        if now - self._last_sweep >= self.window_seconds:
            for stale in list(self._windows):
                self._evict(stale, now)
            self._last_sweep = now

        window = self._evict(key, now)
        if window is not None and len(window) >= self.limit:
            retry_after = max(1, int(self.window_seconds - (now - window[0])) + 1)
            return False, retry_after
        if self.limit <= 0:
            return False, max(1, int(self.window_seconds))
        self._windows.setdefault(key, collections.deque()).append(now)
        return True, 0

    def _evict(self, key: str, now: float) -> Optional[Deque[float]]:
        """Drop expired timestamps for key; forget the key once it has none."""
        window = self._windows.get(key)
        if window is None:
            return None
        while window and now - window[0] >= self.window_seconds:
            window.popleft()
        if not window:
            del self._windows[key]
            return None
        return window

    def __len__(self) -> int:
        """Number of tracked client keys."""
        return len(self._windows)

    def reset(self) -> None:
        self._windows.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limiter keyed by client IP.

    Reads its counter store from app.state.rate_limit_store; requests pass
    through unlimited when no store has been installed.
    """

    async def dispatch(self, request: Request, call_next):
        store = getattr(request.app.state, "rate_limit_store", None)
        if store is None or request.url.path in SKIP_LOG_PATHS:
            return await call_next(request)

        ip = request.client.host if request.client else "unknown"
        allowed, retry_after = store.hit(ip)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {ip} on {request.url.path}")
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please slow down."},
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
