#!/usr/bin/env python3
# adaptive_tools/api/v1/schemas/tool_schemas.py
"""Pydantic schemas for the schema cache admin endpoints."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from adaptive_tools.core.types import RefreshSummary, SchemaCacheEntry


class ToolParameterResponse(BaseModel):
    name: str
    type: str
    required: bool
    description: str = ""


class ToolSchemaResponse(BaseModel):
    """One cached tool schema, with its staleness."""
    tool_name: str
    description: str = ""
    server_id: Optional[str] = None
    parameters: List[ToolParameterResponse] = Field(default_factory=list)
    schema_hash: str
    last_refreshed_at: datetime
    refresh_count: int
    auto_refresh_enabled: bool
    last_error_at: Optional[datetime] = None
    last_error_message: Optional[str] = None
    is_stale: bool

    @classmethod
    def from_entry(cls, entry: SchemaCacheEntry, is_stale: bool) -> "ToolSchemaResponse":
        return cls(
            tool_name=entry.tool_name,
            description=entry.descriptor.description,
            server_id=entry.descriptor.server_id,
            parameters=[
                ToolParameterResponse(
                    name=p.name, type=p.type, required=p.required, description=p.description
                )
                for p in entry.descriptor.parameters
            ],
            schema_hash=entry.schema_hash,
            last_refreshed_at=entry.last_refreshed_at,
            refresh_count=entry.refresh_count,
            auto_refresh_enabled=entry.auto_refresh_enabled,
            last_error_at=entry.last_error_at,
            last_error_message=entry.last_error_message,
            is_stale=is_stale
        )


class AutoRefreshUpdate(BaseModel):
    enabled: bool = Field(..., description="Enable/disable error-triggered refresh for the tool")


class RefreshSummaryResponse(BaseModel):
    total: int
    refreshed: int
    changed: int
    unchanged: int
    skipped: int
    removed: int
    failed: int
    errors: Dict[str, str] = Field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @classmethod
    def from_summary(cls, summary: RefreshSummary) -> "RefreshSummaryResponse":
        return cls(**{name: getattr(summary, name) for name in cls.model_fields})
