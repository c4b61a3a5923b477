#!/usr/bin/env python3
# adaptive_tools/core/schemas/errors.py
"""
Standardized error schemas for API responses (RFC 7807 inspired).

Used by exception handlers to return structured error messages.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Any


class ErrorDetail(BaseModel):
    """A single validation error for a specific field."""

    field: str = Field(..., description="Field path in error")
    message: str = Field(..., description="Error message")
    value: Optional[Any] = Field(None, description="Invalid value provided")


class ProblemDetails(BaseModel):
    """
    RFC 7807-inspired standardized error response format.

    Attributes:
        type: Machine-readable error type (e.g., "NotFoundError")
        title: Short human-readable title
        status: HTTP status code
        detail: Detailed explanation of the error
        instance: URI of the request that caused the error
        errors: List of validation errors for 422 responses
        timestamp: ISO 8601 timestamp when error occurred
    """

    type: str = Field(..., description="Machine-readable error type")
    title: str = Field(..., description="Human-readable error title")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Detailed error explanation")
    instance: Optional[str] = Field(None, description="Request URI that caused error")
    errors: Optional[List[ErrorDetail]] = Field(None, description="Validation errors list")
    timestamp: Optional[str] = Field(None, description="ISO 8601 timestamp")
