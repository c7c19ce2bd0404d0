import logging
from typing import Optional
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fieldforms.api.v1.router import api_router
from fieldforms.config import settings
from fieldforms.core.exceptions import (
    AgentNotFoundException,
    AlreadyReviewedException,
    CycleConflictException,
    ExternalAPIException,
    FormConfigurationException,
    FormNotFoundException,
    FormNotVisibleException,
    InvalidCriteriaException,
    PermissionDeniedException,
    RejectionReasonRequiredException,
    SelfReviewForbiddenException,
    SubmissionNotFoundException,
)
from fieldforms.core.circuit_breaker import CircuitBreakerOpenException
from fieldforms.core.logging_config import setup_logging, cleanup_old_logs
from fieldforms.core.logging_utils import get_request_id, sanitize_log_message
from fieldforms.database import close_db
from fieldforms.middleware.logging_middleware import LoggingMiddleware
from fieldforms.middleware.rate_limit import setup_rate_limiting
from fieldforms.middleware.security import setup_security_middleware

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
)


@app.on_event("startup")
async def startup_event():
    """Initialize logging and cleanup old logs on application startup."""
    setup_logging()
    cleanup_old_logs()
    logger.info("Application startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    await close_db()
    logger.info("Application shutdown complete")


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "X-API-Key", "X-Request-ID", "Accept", "Origin"],
)

# Security middleware (request size limit + security headers)
setup_security_middleware(app)

# Logging middleware (after CORS, before routes); always assigns X-Request-ID
app.add_middleware(LoggingMiddleware)

# Rate limiting
setup_rate_limiting(app)

# Include API router
app.include_router(api_router, prefix=settings.API_V1_STR)


def _log_engine_error(request: Request, message: str, exc: HTTPException, level: int = logging.WARNING) -> None:
    logger.log(
        level,
        sanitize_log_message(
            message,
            Path=request.url.path,
            Method=request.method,
            IP=request.client.host if request.client else None,
            StatusCode=exc.status_code,
            Detail=exc.detail,
            RequestID=get_request_id(request),
        )
    )


def _error_response(exc: HTTPException, reason: Optional[str] = None, **extra) -> JSONResponse:
    content = {"detail": exc.detail}
    if reason:
        content["reason"] = reason
    content.update(extra)
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


# Exception handlers with logging
@app.exception_handler(FormNotVisibleException)
async def form_not_visible_handler(request: Request, exc: FormNotVisibleException):
    _log_engine_error(request, f"Form not visible: {exc.reason}", exc, logging.INFO)
    visibility = exc.visibility.to_dict() if exc.visibility is not None else None
    return _error_response(exc, exc.reason, visibility=visibility)


@app.exception_handler(CycleConflictException)
async def cycle_conflict_handler(request: Request, exc: CycleConflictException):
    _log_engine_error(request, "Cycle conflict, retries exhausted", exc)
    return _error_response(exc, exc.reason)


@app.exception_handler(SelfReviewForbiddenException)
async def self_review_handler(request: Request, exc: SelfReviewForbiddenException):
    _log_engine_error(request, "Self review refused", exc)
    return _error_response(exc, exc.reason)


@app.exception_handler(AlreadyReviewedException)
async def already_reviewed_handler(request: Request, exc: AlreadyReviewedException):
    _log_engine_error(request, "Submission already reviewed", exc, logging.INFO)
    return _error_response(exc, exc.reason)


@app.exception_handler(RejectionReasonRequiredException)
async def rejection_reason_handler(request: Request, exc: RejectionReasonRequiredException):
    _log_engine_error(request, "Rejection without reason", exc, logging.INFO)
    return _error_response(exc, exc.reason)


@app.exception_handler(InvalidCriteriaException)
async def invalid_criteria_handler(request: Request, exc: InvalidCriteriaException):
    _log_engine_error(request, "Invalid visibility criteria", exc)
    return _error_response(exc, exc.reason)


@app.exception_handler(FormConfigurationException)
async def form_configuration_handler(request: Request, exc: FormConfigurationException):
    _log_engine_error(request, "Invalid form configuration", exc)
    return _error_response(exc, exc.reason)


@app.exception_handler(FormNotFoundException)
@app.exception_handler(AgentNotFoundException)
@app.exception_handler(SubmissionNotFoundException)
async def not_found_handler(request: Request, exc: HTTPException):
    _log_engine_error(request, "Resource not found", exc, logging.INFO)
    return _error_response(exc, "not_found")


@app.exception_handler(ExternalAPIException)
async def external_api_handler(request: Request, exc: ExternalAPIException):
    _log_engine_error(request, "External API error", exc, logging.ERROR)
    return _error_response(exc)


@app.exception_handler(PermissionDeniedException)
async def permission_denied_handler(request: Request, exc: PermissionDeniedException):
    _log_engine_error(request, "Permission denied", exc)
    return _error_response(exc)


@app.exception_handler(CircuitBreakerOpenException)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpenException):
    logger.warning(
        sanitize_log_message(
            "Circuit breaker open",
            Path=request.url.path,
            Method=request.method,
            Message=exc.message,
            RequestID=get_request_id(request),
        )
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable. Please try again later."}
    )


# Generic exception handler for unhandled exceptions
@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(
        sanitize_log_message(
            f"Unhandled exception: {type(exc).__name__}",
            Path=request.url.path,
            Method=request.method,
            IP=request.client.host if request.client else None,
            ExceptionType=type(exc).__name__,
            ExceptionMessage=str(exc),
            RequestID=get_request_id(request),
        )
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error" if settings.ENVIRONMENT == "production" else str(exc)
        }
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.VERSION}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "docs": f"{settings.API_V1_STR}/docs"
    }
