"""
Application Middleware for the Gallery Live API.

Cross-cutting request handling shared by every REST endpoint.

Key Middleware Components:
- `CorrelationMiddleware`: Assigns a correlation ID to every request (or reuses
  the caller's `X-Correlation-ID` / `X-Request-ID`) and echoes it back.
- `ErrorHandlingMiddleware`: Last-resort handler that turns unexpected
  exceptions into the standard JSON error envelope.
- `PerformanceMiddleware`: Logs request start/completion, adds an
  `X-Process-Time` header and warns about slow requests.
- `RequestValidationMiddleware`: Rejects oversized bodies and non-JSON writes
  before they reach the endpoints.
- `register_exception_handlers`: Renders `GalleryAPIException` subclasses
  (fetch failures, validation errors, ...) with their own status codes.

Middleware are built on Starlette's `BaseHTTPMiddleware` and only apply to
HTTP traffic; WebSocket sessions pass through untouched.
"""

import time
import uuid
from typing import Callable, Dict, Any, Optional
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .logging_config import get_correlation_id, set_correlation_id, get_logger
from .exceptions import GalleryAPIException, to_http_exception

logger = get_logger("core.middleware")

SLOW_REQUEST_SECONDS = 1.0


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-ID")
            or request.headers.get("X-Request-ID")
            or str(uuid.uuid4())
        )

        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for errors that no exception handler claimed"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(
                f"Unexpected error: {str(e)}",
                extra={
                    "error_type": type(e).__name__,
                    "path": request.url.path,
                    "method": request.method,
                },
                exc_info=True,
            )
            return create_error_response(
                "InternalServerError",
                "INTERNAL_ERROR",
                "An unexpected error occurred",
                status_code=500,
                correlation_id=request_correlation_id(request),
            )


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Middleware for request timing and logging"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "query_params": dict(request.query_params),
                "client_ip": get_client_ip(request),
            },
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        process_time_ms = round(process_time * 1000, 2)
        response.headers["X-Process-Time"] = str(process_time_ms)

        logger.info(
            f"Request completed: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": process_time_ms,
            },
        )

        if process_time > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "process_time_ms": process_time_ms,
                    "threshold_exceeded": True,
                },
            )

        return response


class RequestValidationMiddleware(BaseHTTPMiddleware):
    """Middleware rejecting oversized or non-JSON write requests"""

    def __init__(self, app: ASGIApp, max_request_size: int = 64 * 1024):
        super().__init__(app)
        self.max_request_size = max_request_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            if int(content_length) > self.max_request_size:
                logger.warning(
                    f"Request too large: {content_length} bytes",
                    extra={
                        "content_length": int(content_length),
                        "max_size": self.max_request_size,
                        "path": request.url.path,
                    },
                )
                return create_error_response(
                    "PayloadTooLarge",
                    "REQUEST_TOO_LARGE",
                    f"Request size exceeds maximum allowed size of {self.max_request_size} bytes",
                    status_code=413,
                )

        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" not in content_type:
                logger.warning(
                    f"Invalid content type: {content_type}",
                    extra={
                        "content_type": content_type,
                        "path": request.url.path,
                        "method": request.method,
                    },
                )
                return create_error_response(
                    "UnsupportedMediaType",
                    "INVALID_CONTENT_TYPE",
                    f"Content type '{content_type}' is not supported",
                    status_code=415,
                )

        return await call_next(request)


def register_exception_handlers(app: FastAPI) -> None:
    """Render application exceptions with their own status codes"""

    @app.exception_handler(GalleryAPIException)
    async def gallery_exception_handler(
        request: Request, exc: GalleryAPIException
    ) -> JSONResponse:
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            f"Application error: {exc.message}",
            extra={
                "error_type": type(exc).__name__,
                "error_code": exc.error_code,
                "path": request.url.path,
                "method": request.method,
            },
        )
        http_exc = to_http_exception(exc)
        return create_error_response(
            type(exc).__name__,
            http_exc.detail["error_code"],
            http_exc.detail["message"],
            status_code=http_exc.status_code,
            correlation_id=request_correlation_id(request),
            details=http_exc.detail["details"],
        )


def request_correlation_id(request: Request) -> Optional[str]:
    """Correlation ID of the request, falling back to the current context"""
    return getattr(request.state, "correlation_id", None) or get_correlation_id()


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, considering proxy headers"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def create_error_response(
    error_type: str,
    error_code: str,
    message: str,
    status_code: int = 400,
    correlation_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Create standardized error response"""

    error_data = {"error": {"type": error_type, "code": error_code, "message": message}}

    if correlation_id:
        error_data["error"]["correlation_id"] = correlation_id

    if details:
        error_data["error"]["details"] = details

    return JSONResponse(status_code=status_code, content=error_data)
