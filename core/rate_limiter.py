"""
Simple rate limiter middleware (in-memory).

- Limits registration mutations (POST/PATCH/DELETE under /registrations)
  per client IP; reads are never limited.
- Sliding window of request timestamps per client.
- Clients idle for a whole window are evicted, at most once per window.
- Not shared between processes; the service runs as a single process.
- Usage: app.add_middleware(RateLimiterMiddleware, calls=30, per_seconds=60)
"""
import time
from collections import deque
from typing import Deque, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.response import error

LIMITED_METHODS = ("POST", "PATCH", "DELETE")
LIMITED_PREFIX = "/registrations"


class RateLimiterMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, calls: int = 30, per_seconds: int = 60):
        super().__init__(app)
        self.calls = calls
        self.per_seconds = per_seconds
        self._buckets: Dict[str, Deque[float]] = {}
        self._last_sweep: Optional[float] = None

    async def dispatch(self, request: Request, call_next):
        if request.method not in LIMITED_METHODS or not request.url.path.startswith(LIMITED_PREFIX):
            return await call_next(request)

        key = request.client.host if request.client else "anon"
        retry_after = self.admit(key, time.monotonic())
        if retry_after is not None:
            return JSONResponse(
                status_code=429,
                headers={"Retry-After": str(retry_after)},
                content=error(code="rate_limited", message=f"Rate limit exceeded. Retry after {retry_after} seconds"),
            )
        return await call_next(request)

    def admit(self, key: str, now: float) -> Optional[int]:
        """Record a call from `key`; returns None when allowed, else seconds to wait."""
        self._sweep(now)
        timestamps = self._buckets.setdefault(key, deque())
        while timestamps and timestamps[0] <= now - self.per_seconds:
            timestamps.popleft()
        if len(timestamps) >= self.calls:
            return max(1, int(timestamps[0] + self.per_seconds - now))
        timestamps.append(now)
        return None

    def _sweep(self, now: float) -> None:
        if self._last_sweep is not None and now - self._last_sweep < self.per_seconds:
            return
        self._last_sweep = now
        cutoff = now - self.per_seconds
        for key in [k for k, ts in self._buckets.items() if not ts or ts[-1] <= cutoff]:
            del self._buckets[key]
