from fastapi import APIRouter, Depends, Query, Request
from typing import List
from adaptive_tools.api.v1.schemas.tool_schemas import (
    AutoRefreshUpdate, RefreshSummaryResponse, ToolSchemaResponse
)
from adaptive_tools.core.engine import ToolEngine
from adaptive_tools.core.exceptions import NotFoundError

router = APIRouter(prefix="/schemas", tags=["schemas"])


def get_engine(request: Request) -> ToolEngine:
    return request.app.state.engine


async def _to_response(engine: ToolEngine, entry) -> ToolSchemaResponse:
    return ToolSchemaResponse.from_entry(entry, engine.schema_cache.entry_is_stale(entry))


@router.get("", response_model=List[ToolSchemaResponse])
async def list_schemas(engine: ToolEngine = Depends(get_engine)):
    """Liste les schémas en cache avec leur état de fraîcheur."""
    responses = []
    for tool_name in await engine.schema_cache.list_tool_names():
        entry = await engine.schema_cache.get(tool_name)
        if entry is not None:
            responses.append(await _to_response(engine, entry))
    return responses


@router.post("/refresh", response_model=RefreshSummaryResponse)
async def refresh_all(
    force: bool = Query(False, description="Refresh fresh schemas too"),
    engine: ToolEngine = Depends(get_engine)
):
    """Rafraîchit tous les schémas périmés (tous si force=true)."""
    summary = await engine.refresh_scheduler.refresh_all_stale(force=force)
    return RefreshSummaryResponse.from_summary(summary)


@router.get("/{tool_name}", response_model=ToolSchemaResponse)
async def get_schema(tool_name: str, engine: ToolEngine = Depends(get_engine)):
    entry = await engine.schema_cache.get(tool_name)
    if entry is None:
        raise NotFoundError(f"No cached schema for tool {tool_name}", details={"tool_name": tool_name})
    return await _to_response(engine, entry)


@router.post("/{tool_name}/refresh", response_model=ToolSchemaResponse)
async def refresh_schema(tool_name: str, engine: ToolEngine = Depends(get_engine)):
    """Force le rafraîchissement d'un outil depuis son serveur MCP."""
    entry = await engine.refresh_scheduler.refresh_tool(tool_name)
    return await _to_response(engine, entry)


@router.patch("/{tool_name}/auto-refresh", response_model=ToolSchemaResponse)
async def update_auto_refresh(
    tool_name: str,
    payload: AutoRefreshUpdate,
    engine: ToolEngine = Depends(get_engine)
):
    entry = await engine.schema_cache.set_auto_refresh(tool_name, payload.enabled)
    if entry is None:
        raise NotFoundError(f"No cached schema for tool {tool_name}", details={"tool_name": tool_name})
    return await _to_response(engine, entry)
