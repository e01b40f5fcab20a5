"""
Custom Exception Classes for the Gallery Live API.

This module defines the application's exception hierarchy. Read paths (image
fetches, live queries) raise these exceptions to their caller; the interaction
writer never raises and instead reports a `WriteError` inside its result.

Key Components:
- `GalleryAPIException`: The base exception class. It carries a message, an
  error code, optional details and the HTTP status code it maps to.
- `FetchError`: The remote image source returned a non-success status or was
  unreachable. A missing image is also a `FetchError`; there is no separate
  "not found" kind for images.
- `WriteError`: A store transaction failed. Created by the interaction writer
  and attached to its `WriteResult`.
- `ValidationError`, `PermissionDeniedError`, `RecordNotFoundError`: Caller-side
  rejections raised by the API layer before any write happens.
- `to_http_exception`: Maps an application exception to FastAPI's
  `HTTPException`, decoupling internal errors from the response format.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException


class GalleryAPIException(Exception):
    """Base exception class for the Gallery Live API"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: str = "GALLERY_API_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class FetchError(GalleryAPIException):
    """Raised when the remote image source fails or returns non-2xx"""

    status_code = 502

    def __init__(
        self, resource: str, reason: str, upstream_status: Optional[int] = None
    ):
        super().__init__(
            f"Failed to fetch {resource}: {reason}",
            "FETCH_ERROR",
            {
                "resource": resource,
                "reason": reason,
                "upstream_status": upstream_status,
            },
        )
        self.upstream_status = upstream_status


class WriteError(GalleryAPIException):
    """Raised (and captured) when a store transaction fails"""

    status_code = 503

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Write '{operation}' failed: {reason}",
            "WRITE_ERROR",
            {"operation": operation, "reason": reason},
        )
        self.operation = operation


class ValidationError(GalleryAPIException):
    """Raised when input validation fails"""

    status_code = 400

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Validation failed for field '{field}': {reason}",
            "VALIDATION_ERROR",
            {"field": field, "value": str(value), "reason": reason},
        )


class PermissionDeniedError(GalleryAPIException):
    """Raised when a user tries to delete a record they did not create"""

    status_code = 403

    def __init__(self, record_type: str, record_id: str):
        super().__init__(
            f"Only the creator may delete {record_type} {record_id}",
            "PERMISSION_DENIED",
            {"record_type": record_type, "record_id": record_id},
        )


class RecordNotFoundError(GalleryAPIException):
    """Raised when a reaction or comment does not exist in the store"""

    status_code = 404

    def __init__(self, record_type: str, record_id: str):
        super().__init__(
            f"{record_type.capitalize()} not found: {record_id}",
            "RECORD_NOT_FOUND",
            {"record_type": record_type, "record_id": record_id},
        )


class DatabaseConnectionError(GalleryAPIException):
    """Raised when the store backend cannot be reached"""

    status_code = 500

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Database operation '{operation}' failed: {reason}",
            "DATABASE_ERROR",
            {"operation": operation, "reason": reason},
        )


class WebSocketConnectionError(GalleryAPIException):
    """Raised when a live view cannot be served"""

    status_code = 500

    def __init__(self, session_id: str, reason: str):
        super().__init__(
            f"WebSocket error for session {session_id}: {reason}",
            "WEBSOCKET_ERROR",
            {"session_id": session_id, "reason": reason},
        )


def to_http_exception(exc: GalleryAPIException) -> HTTPException:
    """Convert GalleryAPIException to FastAPI HTTPException"""
    return HTTPException(
        status_code=exc.status_code,
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )
