"""Tests for the tool_schemas CRUD and the Postgres-backed schema cache (mocked pool)."""

import json
import pytest
from datetime import datetime, timezone

from adaptive_tools.core.services.execution.schema_cache import PostgresSchemaCache, compute_schema_hash
from adaptive_tools.database import crud
from adaptive_tools.database.crud.tool_schemas import descriptor_from_json, descriptor_to_json, row_to_entry

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def _row(descriptor, refresh_count=1, **overrides):
    row = {
        "tool_name": descriptor.name,
        "descriptor": descriptor_to_json(descriptor),
        "schema_hash": compute_schema_hash(descriptor),
        "last_refreshed_at": NOW,
        "refresh_count": refresh_count,
        "auto_refresh_enabled": True,
        "last_error_at": None,
        "last_error_message": None,
    }
    row.update(overrides)
    return row


class TestDescriptorJson:

    def test_round_trip(self, outlook_descriptor):
        assert descriptor_from_json(descriptor_to_json(outlook_descriptor)) == outlook_descriptor

    def test_from_decoded_jsonb(self, crm_descriptor):
        decoded = json.loads(descriptor_to_json(crm_descriptor))

        assert descriptor_from_json(decoded) == crm_descriptor


class TestToolSchemaCrud:

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_db_pool):
        _, mock_conn = mock_db_pool

        assert await crud.get_tool_schema("unknown_tool") is None
        mock_conn.fetchrow.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_existing(self, mock_db_pool, crm_descriptor):
        _, mock_conn = mock_db_pool
        mock_conn.fetchrow.return_value = _row(crm_descriptor, refresh_count=4)

        entry = await crud.get_tool_schema("crm_lookup")

        assert entry.descriptor == crm_descriptor
        assert entry.refresh_count == 4

    @pytest.mark.asyncio
    async def test_save_is_single_upsert(self, mock_db_pool, crm_descriptor):
        _, mock_conn = mock_db_pool
        mock_conn.fetchrow.return_value = _row(crm_descriptor, refresh_count=2)
        entry = row_to_entry(_row(crm_descriptor))

        saved = await crud.save_tool_schema(entry)

        query, *args = mock_conn.fetchrow.call_args.args
        assert "ON CONFLICT (tool_name) DO UPDATE" in query
        assert "refresh_count = tool_schemas.refresh_count + 1" in query
        assert "GREATEST" in query
        assert args[0] == "crm_lookup"
        assert args[2] == entry.schema_hash
        assert saved.refresh_count == 2

    @pytest.mark.asyncio
    async def test_mark_error(self, mock_db_pool):
        _, mock_conn = mock_db_pool
        mock_conn.execute.return_value = "UPDATE 1"

        assert await crud.mark_tool_schema_error("crm_lookup", "boom", NOW) is True

        mock_conn.execute.return_value = "UPDATE 0"
        assert await crud.mark_tool_schema_error("unknown_tool", "boom", NOW) is False

    @pytest.mark.asyncio
    async def test_delete(self, mock_db_pool):
        _, mock_conn = mock_db_pool
        mock_conn.execute.return_value = "DELETE 1"

        assert await crud.delete_tool_schema("crm_lookup") is True

    @pytest.mark.asyncio
    async def test_list_names(self, mock_db_pool):
        _, mock_conn = mock_db_pool
        mock_conn.fetch.return_value = [{"tool_name": "a"}, {"tool_name": "b"}]

        assert await crud.list_tool_schema_names() == ["a", "b"]


class TestPostgresSchemaCache:

    @pytest.mark.asyncio
    async def test_upsert_new_tool(self, mock_db_pool, clock, crm_descriptor):
        _, mock_conn = mock_db_pool
        mock_conn.fetchrow.side_effect = [None, _row(crm_descriptor)]
        cache = PostgresSchemaCache(clock=clock)

        entry = await cache.upsert("crm_lookup", crm_descriptor)

        assert entry.refresh_count == 1
        assert mock_conn.fetchrow.await_count == 2

    @pytest.mark.asyncio
    async def test_mark_refresh_needed_unknown_tool(self, mock_db_pool, clock):
        _, mock_conn = mock_db_pool
        mock_conn.execute.return_value = "UPDATE 0"
        cache = PostgresSchemaCache(clock=clock)

        await cache.mark_refresh_needed("unknown_tool", "Missing required parameter: x")

        assert mock_conn.execute.call_args.args[1:] == ("unknown_tool", clock.current, "Missing required parameter: x")

    @pytest.mark.asyncio
    async def test_set_auto_refresh_unknown_tool(self, mock_db_pool, clock):
        _, mock_conn = mock_db_pool
        mock_conn.execute.return_value = "UPDATE 0"
        cache = PostgresSchemaCache(clock=clock)

        assert await cache.set_auto_refresh("unknown_tool", False) is None

    @pytest.mark.asyncio
    async def test_is_stale_with_recent_error(self, mock_db_pool, clock, crm_descriptor):
        _, mock_conn = mock_db_pool
        mock_conn.fetchrow.return_value = _row(crm_descriptor, last_error_at=NOW, last_error_message="boom")
        cache = PostgresSchemaCache(clock=clock)

        assert await cache.is_stale("crm_lookup") is True
