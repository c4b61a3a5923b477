# adaptive_tools/core/services/execution/schema_cache.py
"""
Per-tool schema cache with staleness detection.

Cache entries are read by many concurrent conversations and written by the
RefreshScheduler and by any orchestrator that observes a schema mismatch.
Writes replace the whole entry, so readers either see the old entry or the
new one. A slightly stale read is tolerated: the call simply goes through the
normal retry path.
"""

import asyncio
import hashlib
import json
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from adaptive_tools.core.types import SchemaCacheEntry, ToolDescriptor

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compute_schema_hash(descriptor: ToolDescriptor) -> str:
    """SHA-256 of the canonical JSON form of a descriptor (server_id excluded)."""
    canonical = {
        "name": descriptor.name,
        "description": descriptor.description,
        "parameters": sorted(
            (
                {
                    "name": p.name,
                    "type": p.type,
                    "required": p.required,
                    "description": p.description
                }
                for p in descriptor.parameters
            ),
            key=lambda p: p["name"]
        )
    }
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class SchemaCache(ABC):
    """
    Contract shared by every schema store.

    An entry is stale when:
    - it does not exist, or
    - its last refresh is older than `stale_after`, or
    - an error was recorded within `error_window`, after the last refresh,
      and auto-refresh is enabled for the tool.
    """

    def __init__(
        self,
        stale_after: Optional[timedelta] = None,
        error_window: Optional[timedelta] = None,
        clock: Optional[Clock] = None
    ):
        self.stale_after = stale_after or timedelta(days=settings.schema_stale_after_days)
        self.error_window = error_window or timedelta(minutes=settings.schema_error_window_minutes)
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    @abstractmethod
    async def get(self, tool_name: str) -> Optional[SchemaCacheEntry]:
        pass

    @abstractmethod
    async def upsert(self, tool_name: str, descriptor: ToolDescriptor) -> SchemaCacheEntry:
        """Store a freshly discovered schema. Counter and timestamp always advance."""
        pass

    @abstractmethod
    async def mark_refresh_needed(self, tool_name: str, error_message: str) -> None:
        """Record a recent error against the tool without touching its schema."""
        pass

    @abstractmethod
    async def set_auto_refresh(self, tool_name: str, enabled: bool) -> Optional[SchemaCacheEntry]:
        pass

    @abstractmethod
    async def remove(self, tool_name: str) -> bool:
        """Drop a tool deregistered by the external catalog."""
        pass

    @abstractmethod
    async def list_tool_names(self) -> List[str]:
        pass

    async def is_stale(self, tool_name: str) -> bool:
        return self.entry_is_stale(await self.get(tool_name))

    def entry_is_stale(self, entry: Optional[SchemaCacheEntry]) -> bool:
        if entry is None:
            return True

        now = self.now()
        if now - entry.last_refreshed_at > self.stale_after:
            return True

        if entry.auto_refresh_enabled and entry.last_error_at is not None:
            recent = now - entry.last_error_at <= self.error_window
            after_refresh = entry.last_error_at >= entry.last_refreshed_at
            if recent and after_refresh:
                return True

        return False

    def _next_entry(
        self,
        tool_name: str,
        descriptor: ToolDescriptor,
        previous: Optional[SchemaCacheEntry]
    ) -> SchemaCacheEntry:
        schema_hash = compute_schema_hash(descriptor)
        now = self.now()

        if previous is None:
            logger.info(f"📥 Schema cached for new tool {tool_name}")
            return SchemaCacheEntry(
                tool_name=tool_name,
                descriptor=descriptor,
                schema_hash=schema_hash,
                last_refreshed_at=now,
                refresh_count=1
            )

        if previous.schema_hash != schema_hash:
            logger.info(
                f"🔁 Schema changed for {tool_name}: "
                f"{previous.schema_hash[:12]} → {schema_hash[:12]}"
            )
        else:
            logger.debug(f"Schema unchanged for {tool_name}")

        return replace(
            previous,
            descriptor=descriptor,
            schema_hash=schema_hash,
            last_refreshed_at=max(now, previous.last_refreshed_at),
            refresh_count=previous.refresh_count + 1
        )


class InMemorySchemaCache(SchemaCache):
    """Process-local store, used by tests and single-process deployments."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._entries: Dict[str, SchemaCacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, tool_name: str) -> Optional[SchemaCacheEntry]:
        return self._entries.get(tool_name)

    async def upsert(self, tool_name: str, descriptor: ToolDescriptor) -> SchemaCacheEntry:
        async with self._lock:
            entry = self._next_entry(tool_name, descriptor, self._entries.get(tool_name))
            self._entries[tool_name] = entry
            return entry

    async def mark_refresh_needed(self, tool_name: str, error_message: str) -> None:
        async with self._lock:
            entry = self._entries.get(tool_name)
            if entry is None:
                logger.debug(f"No cached schema for {tool_name}, nothing to mark")
                return
            self._entries[tool_name] = replace(
                entry,
                last_error_at=self.now(),
                last_error_message=error_message
            )
        logger.info(f"📝 Marked {tool_name} for schema refresh")

    async def set_auto_refresh(self, tool_name: str, enabled: bool) -> Optional[SchemaCacheEntry]:
        async with self._lock:
            entry = self._entries.get(tool_name)
            if entry is None:
                return None
            entry = replace(entry, auto_refresh_enabled=enabled)
            self._entries[tool_name] = entry
            return entry

    async def remove(self, tool_name: str) -> bool:
        async with self._lock:
            removed = self._entries.pop(tool_name, None) is not None
        if removed:
            logger.info(f"🗑️ Removed cached schema for deregistered tool {tool_name}")
        return removed

    async def list_tool_names(self) -> List[str]:
        return sorted(self._entries)


class PostgresSchemaCache(SchemaCache):
    """Store backed by the `tool_schemas` table (see adaptive_tools.database)."""

    async def get(self, tool_name: str) -> Optional[SchemaCacheEntry]:
        from adaptive_tools.database import crud
        return await crud.get_tool_schema(tool_name)

    async def upsert(self, tool_name: str, descriptor: ToolDescriptor) -> SchemaCacheEntry:
        from adaptive_tools.database import crud

        previous = await crud.get_tool_schema(tool_name)
        entry = self._next_entry(tool_name, descriptor, previous)
        # Counter and timestamp are resolved by the single-statement upsert
        return await crud.save_tool_schema(entry)

    async def mark_refresh_needed(self, tool_name: str, error_message: str) -> None:
        from adaptive_tools.database import crud

        updated = await crud.mark_tool_schema_error(tool_name, error_message, self.now())
        if updated:
            logger.info(f"📝 Marked {tool_name} for schema refresh")
        else:
            logger.debug(f"No cached schema for {tool_name}, nothing to mark")

    async def set_auto_refresh(self, tool_name: str, enabled: bool) -> Optional[SchemaCacheEntry]:
        from adaptive_tools.database import crud

        if not await crud.set_tool_schema_auto_refresh(tool_name, enabled):
            return None
        return await crud.get_tool_schema(tool_name)

    async def remove(self, tool_name: str) -> bool:
        from adaptive_tools.database import crud

        removed = await crud.delete_tool_schema(tool_name)
        if removed:
            logger.info(f"🗑️ Removed cached schema for deregistered tool {tool_name}")
        return removed

    async def list_tool_names(self) -> List[str]:
        from adaptive_tools.database import crud
        return await crud.list_tool_schema_names()
