import logging
import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from fieldforms.config import settings
from fieldforms.core.logging_utils import mask_headers, sanitize_log_message

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every API request/response and tags it with an X-Request-ID."""

    SKIP_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")

    async def dispatch(self, request: Request, call_next):
        # Honour a caller-supplied id so traces line up across services
        request.state.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id = request.state.request_id

        path = request.url.path
        if (
            not settings.LOG_ENABLE_REQUEST_LOGGING
            or path == "/"
            or path.startswith(self.SKIP_PATHS)
        ):
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        method = request.method
        client_ip = request.client.host if request.client else None
        start_time = time.time()

        logger.debug(
            sanitize_log_message(
                f"Request: {method} {path}",
                RequestID=request_id,
                IP=client_ip,
                QueryParams=dict(request.query_params),
                Headers=mask_headers(dict(request.headers)),
            )
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                sanitize_log_message(
                    f"Exception in request: {method} {path}",
                    RequestID=request_id,
                    ProcessTime=f"{time.time() - start_time:.3f}s",
                    IP=client_ip,
                    Error=str(e),
                )
            )
            raise

        response.headers["X-Request-ID"] = request_id
        logger.info(
            sanitize_log_message(
                f"Response: {method} {path}",
                RequestID=request_id,
                Status=response.status_code,
                ProcessTime=f"{time.time() - start_time:.3f}s",
                IP=client_ip,
            )
        )
        return response
