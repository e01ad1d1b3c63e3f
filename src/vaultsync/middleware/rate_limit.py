"""Rate limiting middleware — Redis-based fixed window per minute.

Learn: Each IP gets a counter key like "vaultsync:rl:{ip}:{minute}".
Heartbeats arrive every ~2 minutes per open item view and preference
writes are debounced client-side, so a well-behaved browser sits far
below the limit; the limiter only catches runaway loops.

The event stream is exempt: it's one long request, and reconnect storms
are already damped by the client's exponential backoff.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()

EXEMPT_SUFFIXES = ("/events", "/health")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per minute."""

    def __init__(self, app, rpm: int = 300):
        super().__init__(app)
        self.rpm = rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "GET" and request.url.path.endswith(EXEMPT_SUFFIXES):
            return await call_next(request)

        try:
            from vaultsync.redis_pool import get_redis

            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        window = int(time.time() // 60)
        key = f"vaultsync:rl:{client_ip}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except Exception as e:
            logger.warning("rate_limit.redis_error", error=str(e))
            return await call_next(request)

        if count > self.rpm:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.rpm - count))
        return response
