# backend/fundledger/schemas/errors.py
"""
Error response bodies.

Every failure leaves the API as {error, message, details}; `error` is the
stable kind name clients switch on (e.g. 'InsufficientUnitsError').
"""

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Body of every domain and HTTP error response."""

    error: str = Field(
        ...,
        description="Error kind (e.g., 'NavUndefinedError')"
    )
    message: str = Field(
        ...,
        description="Human-readable explanation"
    )
    details: dict | None = Field(
        default=None,
        description="Structured context such as requested/available units"
    )


class ValidationErrorDetail(BaseModel):
    """Body of request validation failures (422)."""

    error: str = Field(default="RequestValidationError")
    message: str = Field(default="Request validation failed")
    details: list[dict] = Field(
        ...,
        description="One entry per invalid field"
    )
