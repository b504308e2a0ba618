# backend/portfolio_engine/schemas/errors.py
"""
Error response schemas, used by the exception handlers in main.py.
"""

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Standard error response format."""

    error: str = Field(..., description="Error type (e.g., 'RateUnavailableError')")
    message: str = Field(..., description="Human-readable error message")
    details: dict | None = Field(default=None, description="Additional error context")


class ValidationErrorDetail(BaseModel):
    """Request validation failure (422)."""

    error: str = Field(default="ValidationError")
    message: str = Field(default="Request validation failed")
    details: list[dict] = Field(..., description="List of validation errors")
