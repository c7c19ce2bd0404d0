"""
Rate limiting middleware using slowapi.
"""
import logging
from hashlib import sha256
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from fastapi import FastAPI, Request
from fieldforms.config import settings

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request.
    Handles X-Forwarded-For header for proxied requests.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def get_rate_limit_key(request: Request) -> str:
    """Integrators share egress IPs, so limit per API key when one is sent."""
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return "key:" + sha256(api_key.encode("utf-8")).hexdigest()[:16]
    return "ip:" + get_client_ip(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED
)


def setup_rate_limiting(app: FastAPI) -> None:
    """
    Configure rate limiting for the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    # The per-route decorators look the limiter up on app.state even when disabled
    app.state.limiter = limiter

    if not settings.RATE_LIMIT_ENABLED:
        logger.info("Rate limiting is disabled")
        return

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    logger.info(
        f"Rate limiting enabled: default={settings.RATE_LIMIT_DEFAULT}, "
        f"submissions={settings.RATE_LIMIT_SUBMISSIONS}, reviews={settings.RATE_LIMIT_REVIEWS}"
    )


def rate_limit_submissions():
    """Rate limit decorator for the submit endpoint."""
    return limiter.limit(settings.RATE_LIMIT_SUBMISSIONS)


def rate_limit_reviews():
    """Rate limit decorator for approve/reject endpoints."""
    return limiter.limit(settings.RATE_LIMIT_REVIEWS)
