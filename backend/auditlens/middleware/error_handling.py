"""
API Error Handling for AuditLens
Maps domain exceptions to standardized JSON error responses
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException

from ..errors import AnalyticsError, BadParametersError, NotFoundError
from ..utils.logging_security import sanitize_for_log

logger = logging.getLogger(__name__)


class ErrorDetail(BaseModel):
    """Detailed error information"""

    field: Optional[str] = None
    message: str
    type: Optional[str] = None


class APIErrorResponse(BaseModel):
    """Standardized API error response"""

    success: bool = False
    error: str
    message: str
    details: List[ErrorDetail] = Field(default_factory=list)
    error_id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    path: Optional[str] = None
    method: Optional[str] = None


class ErrorType:
    """Standard error types for consistent handling"""

    VALIDATION_ERROR = "validation_error"
    AUTHENTICATION_ERROR = "authentication_error"
    AUTHORIZATION_ERROR = "authorization_error"
    NOT_FOUND_ERROR = "not_found_error"
    INTERNAL_ERROR = "internal_error"


STATUS_ERROR_TYPES = {
    400: ErrorType.VALIDATION_ERROR,
    401: ErrorType.AUTHENTICATION_ERROR,
    403: ErrorType.AUTHORIZATION_ERROR,
    404: ErrorType.NOT_FOUND_ERROR,
    422: ErrorType.VALIDATION_ERROR,
}


def _response(request: Request, status_code: int, error: APIErrorResponse) -> JSONResponse:
    error.path = str(request.url.path)
    error.method = request.method
    return JSONResponse(status_code=status_code, content=error.model_dump(mode="json"))


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    logger.info(f"{exc.resource} not found: {sanitize_for_log(exc.identifier)} ({request.url.path})")
    return _response(
        request,
        status.HTTP_404_NOT_FOUND,
        APIErrorResponse(error=ErrorType.NOT_FOUND_ERROR, message=exc.message),
    )


async def bad_parameters_handler(request: Request, exc: BadParametersError) -> JSONResponse:
    """400 listing every invalid field."""
    logger.warning(f"Bad parameters on {request.url.path}: {len(exc.errors)} error(s)")
    return _response(
        request,
        status.HTTP_400_BAD_REQUEST,
        APIErrorResponse(
            error=ErrorType.VALIDATION_ERROR,
            message=exc.message,
            details=[ErrorDetail(field=field, message=message) for field, message in exc.errors],
        ),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        ErrorDetail(
            field=".".join(str(part) for part in err.get("loc", ())[1:]) or None,
            message=err.get("msg", "Validation error"),
            type=err.get("type"),
        )
        for err in exc.errors()
    ]
    return _response(
        request,
        status.HTTP_400_BAD_REQUEST,
        APIErrorResponse(error=ErrorType.VALIDATION_ERROR, message="Invalid request data provided", details=details),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    error_type = STATUS_ERROR_TYPES.get(exc.status_code, ErrorType.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    response = _response(request, exc.status_code, APIErrorResponse(error=error_type, message=message))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500; internals are only logged, under the returned error_id."""
    error = APIErrorResponse(error=ErrorType.INTERNAL_ERROR, message="Internal server error occurred")
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path} [error_id={error.error_id}]",
        exc_info=exc,
    )
    return _response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, error)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the AuditLens exception handlers on an application."""
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(BadParametersError, bad_parameters_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    # InternalError and any other AnalyticsError subclass
    app.add_exception_handler(AnalyticsError, internal_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)
