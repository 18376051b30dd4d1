"""
HTTP middleware for the voice room API.

Provides:
- Tiered in-memory rate limiting per client
- CORS for browser clients
- Request logging with latency
"""

import hashlib
import logging
import os
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

load_dotenv()

logger = logging.getLogger("voice_rooms.api")


# =============================================================================
# Rate Limiting Configuration
# =============================================================================

@dataclass
class RateLimitConfig:
    """Configuration for rate limiting a specific endpoint tier."""
    requests_per_minute: int
    burst_limit: int  # Max requests in a 5-second window
    block_duration_seconds: int = 60


RATE_LIMIT_TIERS: dict[str, RateLimitConfig] = {
    # Listing rooms/recordings, signed URLs
    "high": RateLimitConfig(requests_per_minute=120, burst_limit=30),
    # Joining, creating and renaming rooms
    "standard": RateLimitConfig(requests_per_minute=60, burst_limit=15),
    # Anything that starts or stops egress on the media server
    "egress": RateLimitConfig(requests_per_minute=20, burst_limit=5),
}

# Paths that are never rate limited
EXEMPT_PATHS: frozenset[str] = frozenset({"/", "/healthz", "/readyz", "/webhooks/livekit"})


def _get_endpoint_tier(method: str, path: str) -> str:
    """Determine the rate limit tier for a request."""
    if method == "POST" and (path.endswith("/recordings") or path.endswith("/stop") or path.endswith("/reconcile")):
        return "egress"
    if method == "GET" or path == "/recordings/signed-url":
        return "high"
    return "standard"


# =============================================================================
# Rate Limiter Implementation
# =============================================================================

@dataclass
class RequestWindow:
    """Tracks requests in a time window."""
    timestamps: list[float] = field(default_factory=list)
    blocked_until: float = 0.0


class RateLimiter:
    """In-memory sliding window rate limiter keyed by (client, tier)."""

    def __init__(self) -> None:
        self._windows: dict[tuple[str, str], RequestWindow] = defaultdict(RequestWindow)
        self._cleanup_interval = 60.0
        self._last_cleanup = time.monotonic()

    def _cleanup_old_entries(self, now: float) -> None:
        """Remove stale entries to prevent memory growth."""
        if now - self._last_cleanup < self._cleanup_interval:
            return

        cutoff = now - 120
        stale_keys = [
            key for key, window in self._windows.items()
            if window.blocked_until < now and (not window.timestamps or window.timestamps[-1] < cutoff)
        ]
        for key in stale_keys:
            del self._windows[key]
        self._last_cleanup = now

    def check_rate_limit(self, client_id: str, tier: str) -> tuple[bool, str | None]:
        """
        Check if a request is allowed under rate limits.

        Returns:
            (allowed, error_message) - allowed is True if request should proceed
        """
        now = time.monotonic()
        self._cleanup_old_entries(now)

        config = RATE_LIMIT_TIERS.get(tier, RATE_LIMIT_TIERS["standard"])
        window = self._windows[(client_id, tier)]

        if window.blocked_until > now:
            remaining = int(window.blocked_until - now)
            return False, f"Rate limit exceeded. Retry after {remaining} seconds."

        minute_ago = now - 60
        five_seconds_ago = now - 5
        window.timestamps = [ts for ts in window.timestamps if ts > minute_ago]

        if len(window.timestamps) >= config.requests_per_minute:
            window.blocked_until = now + config.block_duration_seconds
            return False, f"Rate limit exceeded ({config.requests_per_minute}/min). Retry after {config.block_duration_seconds} seconds."

        recent_count = sum(1 for ts in window.timestamps if ts > five_seconds_ago)
        if recent_count >= config.burst_limit:
            return False, f"Burst limit exceeded ({config.burst_limit}/5s). Slow down."

        window.timestamps.append(now)
        return True, None


_rate_limiter = RateLimiter()


def _get_client_identifier(request: Request) -> str:
    """Bearer token hash when present, client IP otherwise."""
    authorization = request.headers.get("Authorization")
    if authorization:
        return "token:" + hashlib.sha256(authorization.encode()).hexdigest()[:16]

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def is_rate_limiting_enabled() -> bool:
    return os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Any:
        path = request.url.path
        if path in EXEMPT_PATHS or not is_rate_limiting_enabled():
            return await call_next(request)

        tier = _get_endpoint_tier(request.method, path)
        allowed, rate_error = _rate_limiter.check_rate_limit(_get_client_identifier(request), tier)
        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": rate_error},
                headers={"Retry-After": "60"},
            )
        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Any:
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        # Only log non-health endpoints
        if request.url.path not in ("/", "/healthz", "/readyz"):
            logger.info(
                "%s %s - %d (%.3fs)",
                request.method,
                request.url.path,
                response.status_code,
                process_time,
            )
        return response


# =============================================================================
# Middleware Setup
# =============================================================================

def setup_middlewares(app: FastAPI) -> None:
    """
    Configure all middlewares for the FastAPI application.

    Adds:
    - CORS middleware for cross-origin requests
    - Rate limiting
    - Request logging
    """
    cors_origins = [o.strip() for o in os.getenv("CORS_ALLOWED_ORIGINS", "*").split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials="*" not in cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    logger.info("Middlewares configured: CORS (origins=%s), rate limiting, request logging", cors_origins)


__all__ = [
    "RateLimiter",
    "RateLimitMiddleware",
    "RequestLoggingMiddleware",
    "setup_middlewares",
]
