#!/usr/bin/env python3
# adaptive_tools/api/v1/schemas/__init__.py
"""
Pydantic schemas for API v1.

    from adaptive_tools.api.v1.schemas import ToolSchemaResponse
"""

from .tool_schemas import (
    ToolParameterResponse,
    ToolSchemaResponse,
    AutoRefreshUpdate,
    RefreshSummaryResponse
)
