"""
Error types and FastAPI exception handlers shared by the HTTP and Socket.IO surfaces
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import ValidationError
from datetime import datetime, timezone
from typing import Optional
from loguru import logger

from nuvia.core.config import get_settings


class APIError(Exception):
    """Custom API error class"""
    def __init__(self, message: str, status_code: int = 500, error_code: str = None, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(message)


class CollaborationError(APIError):
    """Base class for errors raised by the collaboration coordinator"""


class InvalidRequest(CollaborationError):
    """Inbound event is missing a required field or has a malformed one"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, error_code="INVALID_REQUEST", details=details)

    @classmethod
    def from_validation_error(cls, exc: ValidationError) -> "InvalidRequest":
        fields = []
        for error in exc.errors():
            location = " -> ".join(str(loc) for loc in error["loc"]) or "payload"
            fields.append(f"{location}: {error['msg']}")
        return cls("Invalid payload: " + "; ".join(fields), details={"validation_errors": exc.errors()})


class NotJoined(CollaborationError):
    """Event references a project the connection is not a participant of"""
    def __init__(self, connection_id: str, project_id: str):
        super().__init__(
            f"Connection {connection_id} has not joined project {project_id}",
            status_code=409,
            error_code="NOT_JOINED"
        )
        self.connection_id = connection_id
        self.project_id = project_id


class TransportFailure(CollaborationError):
    """Handing an outbound event to a single connection failed"""
    def __init__(self, connection_id: str, event: str, reason: str = ""):
        message = f"Delivery of '{event}' to {connection_id} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, status_code=502, error_code="TRANSPORT_FAILURE")
        self.connection_id = connection_id
        self.event = event


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = None,
    details: dict = None,
    request_id: str = None
) -> JSONResponse:
    """
    Render the JSON error body shared by every HTTP error.

    Shape: ``{"error": {message, status_code, timestamp, error_code?, details?, request_id?}}``.
    Details are withheld in production.
    """
    body = {
        "message": message,
        "status_code": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if error_code:
        body["error_code"] = error_code
    if details and get_settings().environment != "production":
        body["details"] = details
    if request_id:
        body["request_id"] = request_id

    return JSONResponse(status_code=status_code, content={"error": body})


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


# Exception handlers
async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Collaboration and other API errors raised by a route"""
    level = "ERROR" if exc.status_code >= 500 else "WARNING"
    logger.bind(request_id=_request_id(request)).log(
        level, f"{request.method} {request.url.path} rejected with {exc.error_code}: {exc.message}"
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
        request_id=_request_id(request)
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods and other framework-level HTTP errors"""
    return create_error_response(
        status_code=exc.status_code,
        message=exc.detail or "An error occurred",
        error_code="HTTP_ERROR",
        request_id=_request_id(request)
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything a route did not anticipate. Internals are only shown in development."""
    request_id = _request_id(request)
    logger.bind(request_id=request_id).opt(exception=exc).error(
        f"Unhandled {type(exc).__name__} in {request.method} {request.url.path}"
    )

    details = None
    if get_settings().environment == "development":
        details = {"exception_type": type(exc).__name__, "exception_message": str(exc)}

    return create_error_response(
        status_code=500,
        message="An internal error occurred",
        error_code="INTERNAL_ERROR",
        details=details,
        request_id=request_id
    )
