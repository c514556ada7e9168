# backend/fundledger/middleware/rate_limit.py
"""
Rate limiting with slowapi.

Money-moving endpoints (subscribe, redeem, transfer, cash-flow writes) use
RATE_LIMIT_WRITE; batch recomputation uses RATE_LIMIT_BATCH; everything else
falls back to RATE_LIMIT_DEFAULT through SlowAPIMiddleware.

Key by: client IP (forwarded headers only from trusted proxies)
Storage: in-memory (single instance); use a Redis storage_uri when scaling out

Usage:
    @router.post("/subscribe")
    @limiter.limit(RATE_LIMIT_WRITE)
    def subscribe(request: Request, ...):
        ...
"""

import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from fundledger.config import settings
from fundledger.services.constants import (
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_WRITE,
    RATE_LIMIT_BATCH,
    RATE_LIMIT_HEALTH,
)

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 60


def _is_trusted_proxy(request: Request) -> bool:
    """True when X-Forwarded-For from this client may be believed."""
    if settings.trust_proxy_headers:
        return True
    return get_remote_address(request) in settings.trusted_proxy_ips


def _get_client_ip(request: Request) -> str:
    """
    Extract the client IP used as the rate limit key.

    Forwarded headers are ignored unless the immediate peer is a trusted
    proxy, otherwise a client could pick its own bucket.
    """
    if _is_trusted_proxy(request):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip
    return get_remote_address(request)


limiter = Limiter(
    key_func=_get_client_ip,
    default_limits=[RATE_LIMIT_DEFAULT],
    enabled=settings.rate_limit_enabled,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 in the same {error, message, details} shape as other API errors."""
    limit_info = str(exc.detail) if exc.detail else "Rate limit exceeded"
    logger.warning("Rate limit exceeded for %s: %s", _get_client_ip(request), limit_info)

    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitError",
            "message": f"Too many requests. {limit_info}",
            "details": {"retry_after": RETRY_AFTER_SECONDS},
        },
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )


__all__ = [
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_WRITE",
    "RATE_LIMIT_BATCH",
    "RATE_LIMIT_HEALTH",
]
