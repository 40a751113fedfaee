"""Rate limiting middleware for the Piktor API.

Each client gets a general budget plus tighter budgets for routes that call
the image model or touch billing and account state. Budgets are counted over
a sliding one-minute window, per process.
"""

import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

WINDOW_SECONDS = 60

AI_ROUTES = ("/api/generate-images", "/api/edit-image", "/api/edit-image-advanced")
SENSITIVE_ROUTES = (
    "/api/stripe/create-checkout-session",
    "/api/stripe/create-portal-session",
    "/api/auth/delete-account",
)
UNLIMITED_PATHS = frozenset({"/api/health", "/api/stripe/webhook"})


@dataclass(frozen=True)
class RouteBudget:
    name: str
    prefixes: tuple[str, ...]
    limit: int
    message: str

    def applies_to(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.prefixes)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding-window limiter keyed by client address."""

    # Drop idle clients every 5 minutes
    _CLEANUP_INTERVAL = 300

    def __init__(self, app, requests_per_minute: int = 60, ai_requests_per_minute: int = 10,
                 sensitive_requests_per_minute: int = 5):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.budgets = (
            RouteBudget("sensitive", SENSITIVE_ROUTES, sensitive_requests_per_minute,
                        "Too many account requests. Please wait before trying again."),
            RouteBudget("ai", AI_ROUTES, ai_requests_per_minute,
                        "AI request rate limit exceeded. Please wait before trying again."),
        )
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._last_cleanup = time.monotonic()

    @staticmethod
    def client_key(request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _prune(self, now: float) -> None:
        if now - self._last_cleanup < self._CLEANUP_INTERVAL:
            return
        self._last_cleanup = now
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= now - WINDOW_SECONDS]:
            del self._hits[key]

    def _take(self, key: str, limit: int, now: float) -> Optional[int]:
        """Record a hit; returns seconds to wait when ``key`` is over ``limit``."""
        hits = self._hits[key]
        while hits and hits[0] <= now - WINDOW_SECONDS:
            hits.popleft()
        if len(hits) >= limit:
            return max(1, math.ceil(hits[0] + WINDOW_SECONDS - now))
        hits.append(now)
        return None

    @staticmethod
    def _too_many(detail: str, retry_after: int) -> JSONResponse:
        return JSONResponse(status_code=429, content={"detail": detail}, headers={"Retry-After": str(retry_after)})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in UNLIMITED_PATHS:
            return await call_next(request)

        now = time.monotonic()
        self._prune(now)
        client = self.client_key(request)

        for budget in self.budgets:
            if budget.applies_to(path):
                wait = self._take(f"{client}:{budget.name}", budget.limit, now)
                if wait is not None:
                    return self._too_many(budget.message, wait)

        wait = self._take(client, self.requests_per_minute, now)
        if wait is not None:
            return self._too_many("Rate limit exceeded. Please wait before trying again.", wait)

        return await call_next(request)
