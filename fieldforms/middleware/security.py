"""
Body size limit and response hardening headers for the JSON API.
"""
import logging
from typing import Optional
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
from fieldforms.config import settings
from fieldforms.core.logging_utils import get_request_id, sanitize_log_message

logger = logging.getLogger(__name__)

_DOCS_SUFFIXES = ("/docs", "/redoc", "/openapi.json")


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Refuses bodies larger than ``max_size`` based on Content-Length."""

    def __init__(self, app, max_size: int):
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_size:
            logger.warning(
                sanitize_log_message(
                    "Request body too large",
                    Path=request.url.path,
                    Method=request.method,
                    ContentLength=int(content_length),
                    MaxSize=self.max_size,
                    RequestID=get_request_id(request),
                )
            )
            return JSONResponse(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                content={"detail": "Request body too large", "reason": "payload_too_large"},
            )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds CSP and related headers; the docs pages get a CSP that lets Swagger UI load."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        if request.url.path.endswith(_DOCS_SUFFIXES):
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "img-src 'self' data: https://fastapi.tiangolo.com; "
                "frame-ancestors 'none'"
            )
        else:
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"

        return response


def setup_security_middleware(app, max_request_size: Optional[int] = None) -> None:
    max_request_size = max_request_size or settings.MAX_REQUEST_SIZE
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_size=max_request_size)
    logger.info(f"Security middleware enabled: max_request_size={max_request_size} bytes")
