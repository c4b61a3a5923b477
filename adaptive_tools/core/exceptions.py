#!/usr/bin/env python3
# adaptive_tools/core/exceptions.py
"""
Typed exceptions for the tool execution engine.

Tool failures themselves are never raised: they travel as ToolCallResult
values. These exceptions cover misuse of the engine, collaborator failures
that callers must see, and the API layer (each one maps to an HTTP code in
the global handler).
"""

from typing import Optional, Dict, Any


class AppException(Exception):
    """Base class for every engine exception."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppException):
    """Invalid input (HTTP 400)."""
    pass


class NotFoundError(AppException):
    """Unknown tool or cache entry (HTTP 404)."""
    pass


class CircuitBreakerOpenError(AppException):
    """Circuit breaker is open, provider temporarily unavailable (HTTP 503)."""
    pass


class LLMResponseError(AppException):
    """The LLM returned nothing usable (empty or unparsable response)."""
    pass


class SchemaDiscoveryError(AppException):
    """The tool server could not be asked for its current schema (HTTP 502)."""
    pass


class RetryBudgetExceededError(AppException):
    """An attempt was started on a retry context whose budget is spent."""
    pass
