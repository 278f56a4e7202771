"""Application errors and their serialization into the response envelope.

Every failure leaving the API has the shape::

    {
        "success": false,
        "data": null,
        "error": {"code": "NOT_FOUND", "message": "...", "details": {...}},
        "meta": {"request_id": "..."}
    }

`code` is drawn from the closed set in `ErrorCode`.
"""

import logging
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .clock import utcnow

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Closed set of application error codes."""
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    PAYMENT_LOCK = "PAYMENT_LOCK"


STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.CONFLICT: 409,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.PAYMENT_LOCK: 423,
}


class AppError(HTTPException):
    """
    Base application error.

    Carries an `ErrorCode`, a human-readable message and optional structured
    details. The HTTP status is derived from the code.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(
            status_code=STATUS_CODES[code],
            detail=message,
            headers=headers,
        )

    def to_error(self) -> Dict[str, Any]:
        """Return the `error` member of the envelope."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": jsonable_encoder(self.details) if self.details else None,
        }

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class UnauthorizedError(AppError):
    """Missing or invalid credentials."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            ErrorCode.UNAUTHORIZED,
            message,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(AppError):
    """Authenticated but not allowed."""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(ErrorCode.FORBIDDEN, message)


class NotFoundError(AppError):
    """Requested resource does not exist (or is not visible to the caller)."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[Any] = None,
        message: Optional[str] = None,
    ):
        if not message:
            message = f"{resource_type.replace('_', ' ').capitalize()} not found"
        details: Dict[str, Any] = {"resource_type": resource_type}
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        super().__init__(ErrorCode.NOT_FOUND, message, details)


class ValidationError(AppError):
    """Business-rule or input validation failure."""

    def __init__(
        self,
        message: str = "The request data failed validation",
        details: Optional[Dict[str, Any]] = None,
        violations: Optional[List[Dict[str, str]]] = None,
    ):
        details = dict(details or {})
        if violations:
            details["violations"] = violations
        super().__init__(ErrorCode.VALIDATION_ERROR, message, details)


class ConflictError(AppError):
    """The request conflicts with the current state of a resource."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.CONFLICT, message, details)


class RateLimitedError(AppError):
    """Too many requests from one client."""

    def __init__(
        self,
        retry_after: int,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
        message: str = "Too many requests, please try again later",
    ):
        details: Dict[str, Any] = {"retry_after_seconds": retry_after}
        if limit is not None:
            details["limit"] = limit
        if window_seconds is not None:
            details["window_seconds"] = window_seconds
        super().__init__(
            ErrorCode.RATE_LIMITED,
            message,
            details,
            headers={"Retry-After": str(retry_after)},
        )


class InternalError(AppError):
    """Unexpected failure. Details never leak internals, only an error id."""

    def __init__(
        self,
        message: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
    ):
        self.error_id = error_id or str(uuid.uuid4())
        super().__init__(
            ErrorCode.INTERNAL_ERROR,
            message,
            {"error_id": self.error_id, "timestamp": utcnow().isoformat() + "Z"},
        )


class BadRequestError(AppError):
    """The request cannot be served in the resource's current condition."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.BAD_REQUEST, message, details)


class PaymentLockError(AppError):
    """
    The booking is locked against the requested change.

    Raised for financial edits once money has been received, and for any
    modification while a refund request is still open.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.PAYMENT_LOCK, message, details)


def unexpected_error(message: str, exc: Exception, **context: Any) -> InternalError:
    """Log an unexpected failure with its traceback and build the error to raise."""
    error = InternalError()
    logger.error(
        message,
        extra={**{k: str(v) for k, v in context.items()}, "error": str(exc), "error_id": error.error_id},
        exc_info=exc,
    )
    return error


def _request_meta(request: Request) -> Dict[str, Any]:
    return {"request_id": getattr(request.state, "request_id", None)}


def error_response(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "data": None,
            "error": exc.to_error(),
            "meta": _request_meta(request),
        },
        headers=exc.headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Serialize an `AppError` into the envelope."""
    return error_response(request, exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Turn FastAPI request validation failures into VALIDATION_ERROR."""
    violations = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        violations.append({
            "path": ".".join(location) or "body",
            "message": error.get("msg", "Invalid value"),
        })

    logger.info(
        "Request validation failed",
        extra={"path": request.url.path, "violation_count": len(violations)},
    )
    return error_response(
        request,
        ValidationError("The request data failed validation", violations=violations),
    )


_HTTP_STATUS_CODES = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.BAD_REQUEST,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    423: ErrorCode.PAYMENT_LOCK,
    429: ErrorCode.RATE_LIMITED,
}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Map framework HTTP errors (unknown route, wrong method, ...) onto the closed code set."""
    code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "data": None,
            "error": {"code": code.value, "message": message, "details": None},
            "meta": _request_meta(request),
        },
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for exceptions nothing else caught."""
    error = InternalError()
    logger.error(
        "Unhandled exception",
        extra={"path": request.url.path, "error_id": error.error_id},
        exc_info=exc,
    )
    return error_response(request, error)


def register_exception_handlers(app) -> None:
    """Attach every handler above to a FastAPI app."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
