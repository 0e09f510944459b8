"""Global exception handlers for the FastAPI application.

Every failure leaves the API as an ``ErrorResponse``. Application errors
are mapped to HTTP statuses by type:

| Exception           | Status |
|---------------------|--------|
| ValidationError     | 400    |
| UnauthorizedError   | 401    |
| ForbiddenError      | 403    |
| NotFoundError       | 404    |
| ConflictError       | 409    |
| BusinessRuleError   | 422    |
| StorageError        | 500    |
| other TaxformError  | 500    |

Storage failures keep their cause in the logs only; the client receives a
generic message.
"""

import traceback
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from taxform.api.constants import HTTP_422_UNPROCESSABLE
from taxform.api.schemas.errors import ErrorResponse
from taxform.api.utils.responses import ORJSONResponse
from taxform.core.config import get_settings
from taxform.core.context import RequestContext, generate_request_id
from taxform.core.error_context import sanitize_dict, sanitize_error_context
from taxform.core.exceptions import (
    BusinessRuleError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    Severity,
    StorageError,
    TaxformError,
    UnauthorizedError,
    ValidationError,
)

STORAGE_ERROR_MESSAGE = "A storage error occurred while processing the request"

# Ordered: subclasses before their bases
_STATUS_BY_TYPE: tuple[tuple[type[TaxformError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (BusinessRuleError, HTTP_422_UNPROCESSABLE),
)


def status_code_for(exc: TaxformError) -> int:
    """Return the HTTP status for an application error."""
    for exc_type, status_code in _STATUS_BY_TYPE:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or generate_request_id()


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    severity: str,
    details: dict[str, Any] | None = None,
    debug_info: dict[str, Any] | None = None,
) -> Response:
    error_response = ErrorResponse(
        status=status_code,
        code=code,
        message=message,
        details=details,
        correlation_id=RequestContext.get_correlation_id(),
        request_id=_request_id(request),
        severity=severity,
        debug_info=debug_info,
    )
    return ORJSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json"),
    )


async def taxform_error_handler(request: Request, exc: Exception) -> Response:
    """Handle TaxformError exceptions.

    Raises:
        TypeError: If exc is not a TaxformError instance
    """
    if not isinstance(exc, TaxformError):
        raise TypeError(f"Expected TaxformError, got {type(exc).__name__}")

    settings = get_settings()
    status_code = status_code_for(exc)

    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": str(request.url.path),
            "status_code": status_code,
        },
    )
    log = logger.error if exc.should_alert else logger.warning
    log("Handling {}: {}", type(exc).__name__, exc.message, **error_context)

    message = exc.message
    details = sanitize_dict(exc.context) if exc.context else None
    if isinstance(exc, StorageError):
        message = STORAGE_ERROR_MESSAGE
        details = None

    debug_info = None
    if settings.environment == "development":
        debug_info = {
            "stack_trace": exc.stack_trace,
            "error_context": sanitize_dict(exc.context),
            "exception_type": type(exc).__name__,
            "fingerprint": exc.fingerprint,
        }
        if exc.cause:
            debug_info["cause"] = {
                "type": type(exc.cause).__name__,
                "message": str(exc.cause),
            }

    return _error_response(
        request,
        status_code,
        exc.error_code,
        message,
        exc.severity.value,
        details=details,
        debug_info=debug_info,
    )


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Turn FastAPI request validation failures into field-level 422 errors.

    Raises:
        TypeError: If exc is not a RequestValidationError instance
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    # ['body', 'rate'] -> 'rate'
    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field_path = error.get("loc", ())
        field_name = ".".join(str(loc) for loc in field_path[1:]) or "root"
        field_errors.setdefault(field_name, []).append(error.get("msg", "Invalid value"))

    logger.warning(
        "Request validation failed",
        path=str(request.url.path),
        method=request.method,
        validation_errors=field_errors,
    )

    return _error_response(
        request,
        HTTP_422_UNPROCESSABLE,
        ErrorCode.VALIDATION_ERROR.value,
        "Request validation failed",
        Severity.LOW.value,
        details={"validation_errors": field_errors},
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Render Starlette HTTP exceptions (unknown routes, bad methods) uniformly.

    Raises:
        TypeError: If exc is not an HTTPException instance
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    error_code = ErrorCode.INTERNAL_ERROR.value
    severity = Severity.MEDIUM
    if exc.status_code == status.HTTP_400_BAD_REQUEST:
        error_code, severity = ErrorCode.VALIDATION_ERROR.value, Severity.LOW
    elif exc.status_code == status.HTTP_401_UNAUTHORIZED:
        error_code, severity = ErrorCode.UNAUTHORIZED.value, Severity.HIGH
    elif exc.status_code == status.HTTP_403_FORBIDDEN:
        error_code = ErrorCode.FORBIDDEN.value
    elif exc.status_code == status.HTTP_404_NOT_FOUND:
        error_code, severity = ErrorCode.NOT_FOUND.value, Severity.LOW
    elif exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        severity = Severity.HIGH

    logger.warning(
        "HTTP exception",
        status=exc.status_code,
        method=request.method,
        path=str(request.url.path),
        detail=exc.detail,
    )

    return _error_response(
        request, exc.status_code, error_code, str(exc.detail), severity.value
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Catch everything else; internals are hidden in production."""
    settings = get_settings()

    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": str(request.url.path),
        },
    )
    logger.opt(exception=exc).error(
        "Unhandled exception: {}", type(exc).__name__, **error_context
    )

    if settings.environment == "production":
        message = "An internal server error occurred"
        details = None
        debug_info = None
    else:
        message = f"Internal server error: {type(exc).__name__}"
        details = {"error": str(exc), "type": type(exc).__name__}
        debug_info = {
            "stack_trace": traceback.format_tb(exc.__traceback__),
            "exception_type": type(exc).__name__,
        }

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL_ERROR.value,
        message,
        Severity.CRITICAL.value,
        details=details,
        debug_info=debug_info,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    app.add_exception_handler(TaxformError, taxform_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
