import json
from datetime import datetime
from typing import Optional, Dict, List, Any
from adaptive_tools.database.db import get_pool
from adaptive_tools.core.types import SchemaCacheEntry, ToolDescriptor

# ============================
# TOOL SCHEMAS
# ============================


def descriptor_to_json(descriptor: ToolDescriptor) -> str:
    return json.dumps({
        "name": descriptor.name,
        "description": descriptor.description,
        "server_id": descriptor.server_id,
        "input_schema": descriptor.to_input_schema()
    })


def descriptor_from_json(raw: Any) -> ToolDescriptor:
    data = json.loads(raw) if isinstance(raw, str) else dict(raw)
    return ToolDescriptor.from_input_schema(
        name=data["name"],
        description=data.get("description", ""),
        input_schema=data.get("input_schema"),
        server_id=data.get("server_id")
    )


def row_to_entry(row: Dict) -> SchemaCacheEntry:
    return SchemaCacheEntry(
        tool_name=row["tool_name"],
        descriptor=descriptor_from_json(row["descriptor"]),
        schema_hash=row["schema_hash"],
        last_refreshed_at=row["last_refreshed_at"],
        refresh_count=row["refresh_count"],
        auto_refresh_enabled=row["auto_refresh_enabled"],
        last_error_at=row["last_error_at"],
        last_error_message=row["last_error_message"]
    )


async def get_tool_schema(tool_name: str) -> Optional[SchemaCacheEntry]:
    """Récupère l'entrée de cache d'un outil."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM tool_schemas WHERE tool_name = $1", tool_name)
        return row_to_entry(dict(row)) if row else None


async def save_tool_schema(entry: SchemaCacheEntry) -> SchemaCacheEntry:
    """
    Upsert atomique d'un schéma.

    Sur conflit : le compteur est incrémenté côté SQL et l'horodatage ne recule jamais.
    L'état auto-refresh et la dernière erreur ne sont pas modifiés.
    """
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """INSERT INTO tool_schemas
               (tool_name, descriptor, schema_hash, last_refreshed_at, refresh_count, auto_refresh_enabled)
               VALUES ($1, $2::jsonb, $3, $4, 1, TRUE)
               ON CONFLICT (tool_name) DO UPDATE SET
                   descriptor = EXCLUDED.descriptor,
                   schema_hash = EXCLUDED.schema_hash,
                   last_refreshed_at = GREATEST(tool_schemas.last_refreshed_at, EXCLUDED.last_refreshed_at),
                   refresh_count = tool_schemas.refresh_count + 1
               RETURNING *""",
            entry.tool_name, descriptor_to_json(entry.descriptor), entry.schema_hash, entry.last_refreshed_at
        )
        return row_to_entry(dict(row))


async def mark_tool_schema_error(tool_name: str, error_message: str, error_at: datetime) -> bool:
    """Enregistre une erreur récente. Retourne False si l'outil n'est pas en cache."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            """UPDATE tool_schemas
               SET last_error_at = $2, last_error_message = $3
               WHERE tool_name = $1""",
            tool_name, error_at, error_message
        )
        return result == "UPDATE 1"


async def set_tool_schema_auto_refresh(tool_name: str, enabled: bool) -> bool:
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            "UPDATE tool_schemas SET auto_refresh_enabled = $2 WHERE tool_name = $1",
            tool_name, enabled
        )
        return result == "UPDATE 1"


async def delete_tool_schema(tool_name: str) -> bool:
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute("DELETE FROM tool_schemas WHERE tool_name = $1", tool_name)
        return result == "DELETE 1"


async def list_tool_schema_names() -> List[str]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT tool_name FROM tool_schemas ORDER BY tool_name")
        return [row["tool_name"] for row in rows]
