"""Common Pydantic schemas."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
CURRENCY_PATTERN = r"^[A-Z]{3}$"


class Violation(BaseModel):
    """A single request validation failure."""

    path: str = Field(..., description="Dotted path to the invalid field")
    message: str = Field(..., description="Validation error message")


class ErrorBody(BaseModel):
    """The `error` member of a failed response."""

    code: str = Field(..., description="One of the application error codes")
    message: str = Field(..., description="Human-readable explanation")
    details: Optional[Dict[str, Any]] = Field(None, description="Structured context")


class ErrorEnvelope(BaseModel):
    """Envelope returned for every failed request."""

    success: bool = Field(False)
    data: None = None
    error: ErrorBody
    meta: Optional[Dict[str, Any]] = None


class PageMeta(BaseModel):
    """Pagination metadata placed in `meta` of list responses."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)


ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: {"model": ErrorEnvelope, "description": "Validation or bad request"},
    401: {"model": ErrorEnvelope, "description": "Authentication required"},
    403: {"model": ErrorEnvelope, "description": "Forbidden"},
    404: {"model": ErrorEnvelope, "description": "Not found"},
    409: {"model": ErrorEnvelope, "description": "Conflict"},
}


def error_responses(*status_codes: int) -> Dict[int, Dict[str, Any]]:
    """OpenAPI `responses=` entries for the given status codes."""
    extra = {
        423: {"model": ErrorEnvelope, "description": "Booking locked by payments or refunds"},
        429: {"model": ErrorEnvelope, "description": "Rate limited"},
    }
    table = {**ERROR_RESPONSES, **extra}
    return {code: table[code] for code in status_codes}


__all__ = [
    "EMAIL_PATTERN",
    "CURRENCY_PATTERN",
    "Violation",
    "ErrorBody",
    "ErrorEnvelope",
    "PageMeta",
    "error_responses",
]
