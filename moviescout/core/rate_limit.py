import asyncio
import time
from collections import defaultdict, deque
from collections.abc import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from moviescout.core.errors import APIError, _error_payload
from moviescout.core.settings import Settings

FAN_OUT_PATHS = ("/v1/search", "/v1/recommendations")


class InMemoryRateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._events: dict[tuple[str, str], deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._clock = clock

    async def allow(self, key: tuple[str, str], limit: int, window_seconds: int = 60) -> bool:
        now = self._clock()
        async with self._lock:
            bucket = self._events[key]
            cutoff = now - window_seconds
            while bucket and bucket[0] < cutoff:
                bucket.popleft()
            if len(bucket) >= limit:
                return False
            bucket.append(now)
            return True


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings
        self.limiter = InMemoryRateLimiter()

    def limit_for(self, path: str) -> int:
        if path.startswith(FAN_OUT_PATHS):
            return self.settings.search_rate_limit_per_minute
        return self.settings.rate_limit_per_minute

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path.startswith("/health"):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        limit = self.limit_for(path)
        allowed = await self.limiter.allow(key=(path, client_ip), limit=limit)
        if not allowed:
            error = APIError(
                code="rate_limited",
                message="Too many requests",
                status_code=429,
                details={"path": path, "limit_per_minute": limit},
            )
            # middleware runs outside the registered exception handlers
            return JSONResponse(status_code=error.status_code, content=_error_payload(error.code, error.message, error.details))

        return await call_next(request)
