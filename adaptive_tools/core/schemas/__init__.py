#!/usr/bin/env python3
# adaptive_tools/core/schemas/__init__.py
"""
Schemas for core domain models.
"""

from .errors import ErrorDetail, ProblemDetails

__all__ = ['ErrorDetail', 'ProblemDetails']
