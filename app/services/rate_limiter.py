"""
Rate Limiting

Per-client request limits using slowapi.

- Clients are keyed by IP, honoring X-Forwarded-For / X-Real-IP
- Counters live in Redis so limits hold across API workers
- Disabled entirely with RATE_LIMIT_ENABLED=false (tests, local dev)

Limits:
- Default: settings.rate_limit_default (100/minute)
- Search and suggestions: SEARCH_LIMIT
- Auth (register/login): AUTH_LIMIT
"""

import logging

from fastapi import Request, status
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.config import get_settings

logger = logging.getLogger(__name__)

SEARCH_LIMIT = "60/minute"
AUTH_LIMIT = "10/minute"


def get_client_ip(request: Request) -> str:
    """Client IP for rate limiting, looking through common proxy headers."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First entry is the originating client
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


def create_limiter() -> Limiter:
    settings = get_settings()
    storage_uri = settings.redis_url if settings.rate_limit_enabled else None

    limiter = Limiter(
        key_func=get_client_ip,
        default_limits=[settings.rate_limit_default],
        storage_uri=storage_uri,
        strategy="fixed-window",
        enabled=settings.rate_limit_enabled,
    )

    logger.info(
        f"Rate limiter initialized - enabled: {settings.rate_limit_enabled}, "
        f"default: {settings.rate_limit_default}"
    )
    return limiter


limiter = create_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 response in the standard envelope, with a Retry-After header."""
    limit_detail = str(exc.detail)

    response = JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "success": False,
            "message": "Too many requests. Please slow down.",
            "errors": {"rate_limit": [limit_detail]},
        },
    )
    response.headers["Retry-After"] = "60"
    response.headers["X-RateLimit-Limit"] = limit_detail

    logger.warning(f"Rate limit exceeded for {get_client_ip(request)}: {limit_detail}")
    return response
