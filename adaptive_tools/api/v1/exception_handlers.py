#!/usr/bin/env python3
# adaptive_tools/api/v1/exception_handlers.py
"""
Handlers d'exceptions globaux pour mapper les exceptions métier aux codes HTTP.

Utilisé dans main.py via app.add_exception_handler().
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from datetime import datetime, timezone
from adaptive_tools.core.exceptions import (
    AppException,
    ValidationError,
    NotFoundError,
    CircuitBreakerOpenError,
    SchemaDiscoveryError
)
from adaptive_tools.core.schemas.errors import ErrorDetail, ProblemDetails
from adaptive_tools.config.logger import logger


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handler global pour toutes les exceptions métier (AppException).

    Mapping exceptions → HTTP codes:
    - ValidationError → 400 Bad Request
    - NotFoundError → 404 Not Found
    - SchemaDiscoveryError → 502 Bad Gateway
    - CircuitBreakerOpenError → 503 Service Unavailable
    - AppException (générique) → 500 Internal Server Error

    Returns:
        JSONResponse avec le code HTTP approprié et format RFC 7807
    """
    status_code = 500
    if isinstance(exc, ValidationError):
        status_code = 400
    elif isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, SchemaDiscoveryError):
        status_code = 502
    elif isinstance(exc, CircuitBreakerOpenError):
        status_code = 503

    if status_code >= 500:
        logger.error(f"[{exc.__class__.__name__}] {exc.message} | Path: {request.url.path}")
    else:
        logger.warning(f"[{exc.__class__.__name__}] {exc.message} | Path: {request.url.path}")

    problem = ProblemDetails(
        type=exc.__class__.__name__,
        title=exc.__class__.__name__.replace('Error', ' Error'),
        status=status_code,
        detail=exc.message,
        instance=str(request.url),
        timestamp=datetime.now(timezone.utc).isoformat()
    )

    response_data = problem.model_dump(exclude_none=True)
    # Détails supplémentaires (extensions RFC 7807)
    if exc.details:
        response_data.update(exc.details)

    return JSONResponse(status_code=status_code, content=response_data)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors (422), with field-level details."""
    error_details = []
    for error in exc.errors():
        # Ignore first element of loc: 'body', 'query', 'path'
        loc = error.get('loc', ())
        field_path = ' → '.join(str(x) for x in loc[1:]) if len(loc) > 1 else 'unknown'
        error_details.append(ErrorDetail(
            field=field_path,
            message=error.get('msg', 'Validation error'),
            value=error.get('input')
        ))

    problem = ProblemDetails(
        type="ValidationError",
        title="Validation Failed",
        status=422,
        detail=f"{len(error_details)} validation error(s) detected",
        instance=str(request.url),
        errors=error_details,
        timestamp=datetime.now(timezone.utc).isoformat()
    )

    logger.warning(f"Validation error on {request.url.path}: {len(error_details)} error(s)")

    return JSONResponse(
        status_code=422,
        content=problem.model_dump(mode="json", exclude_none=True)
    )
