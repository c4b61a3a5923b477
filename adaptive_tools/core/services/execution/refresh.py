# adaptive_tools/core/services/execution/refresh.py
"""Background and batch refresh of cached tool schemas."""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional

from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from adaptive_tools.core.exceptions import NotFoundError
from adaptive_tools.core.types import RefreshSummary, SchemaCacheEntry
from .schema_cache import SchemaCache


class RefreshScheduler:
    """
    Keeps SchemaCache entries in line with what the tool servers enforce.

    - refresh_if_stale(): fire-and-forget, called from the request path
    - refresh_all_stale(): blocking batch, called by the periodic job or the API
    """

    def __init__(
        self,
        cache: SchemaCache,
        discovery,
        delay_seconds: Optional[float] = None
    ):
        self.cache = cache
        self.discovery = discovery
        self.delay_seconds = settings.schema_refresh_delay_seconds if delay_seconds is None else delay_seconds
        self._in_flight: Dict[str, asyncio.Task] = {}

    @property
    def in_flight(self):
        return sorted(self._in_flight)

    def refresh_if_stale(self, tool_name: str) -> None:
        """
        Schedule a background refresh for `tool_name` and return immediately.

        At most one task per tool is in flight. Task failures are logged, never raised.
        """
        if tool_name in self._in_flight:
            logger.debug(f"Refresh already in flight for {tool_name}")
            return

        task = asyncio.create_task(self._refresh_if_stale(tool_name), name=f"schema-refresh:{tool_name}")
        self._in_flight[tool_name] = task
        task.add_done_callback(lambda t: self._on_done(tool_name, t))

    def _on_done(self, tool_name: str, task: asyncio.Task):
        self._in_flight.pop(tool_name, None)
        if task.cancelled():
            logger.debug(f"Background refresh cancelled for {tool_name}")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"❌ Background schema refresh failed for {tool_name}: {error}")

    async def _refresh_if_stale(self, tool_name: str):
        if not await self.cache.is_stale(tool_name):
            logger.debug(f"Schema for {tool_name} is fresh, skipping refresh")
            return
        await self.refresh_tool(tool_name)

    async def refresh_tool(self, tool_name: str) -> SchemaCacheEntry:
        """
        Fetch the current schema of one tool and upsert it.

        Raises:
            NotFoundError: If the catalog no longer lists the tool (its entry is removed)
            SchemaDiscoveryError: If the tool server cannot be reached
        """
        descriptor = await self.discovery.fetch_schema(tool_name)
        if descriptor is None:
            await self.cache.remove(tool_name)
            raise NotFoundError(f"Tool {tool_name} is no longer registered", details={"tool_name": tool_name})
        entry = await self.cache.upsert(tool_name, descriptor)
        logger.info(f"🔄 Schema refreshed for {tool_name} (refresh #{entry.refresh_count})")
        return entry

    async def refresh_all_stale(self, force: bool = False) -> RefreshSummary:
        """
        Refresh every stale schema (every schema when `force`).

        Per-tool failures are recorded in the summary. Tools no longer listed
        by the catalog are removed from the cache.
        """
        summary = RefreshSummary(started_at=datetime.now(timezone.utc))
        registered = await self.discovery.list_tool_names()
        summary.total = len(registered)

        for name in await self.cache.list_tool_names():
            if name not in registered and await self.cache.remove(name):
                summary.removed += 1

        fetched = 0
        for tool_name in registered:
            if not force and not await self.cache.is_stale(tool_name):
                summary.skipped += 1
                continue

            if fetched and self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)
            fetched += 1

            previous = await self.cache.get(tool_name)
            try:
                entry = await self.refresh_tool(tool_name)
            except NotFoundError:
                summary.removed += 1
                continue
            except Exception as e:
                logger.error(f"❌ Schema refresh failed for {tool_name}: {e}")
                summary.failed += 1
                summary.errors[tool_name] = str(e)
                continue

            summary.refreshed += 1
            if previous is not None and previous.schema_hash == entry.schema_hash:
                summary.unchanged += 1
            else:
                summary.changed += 1

        summary.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"📋 Schema refresh done: {summary.refreshed}/{summary.total} refreshed "
            f"({summary.changed} changed, {summary.skipped} fresh, {summary.removed} removed, {summary.failed} failed)"
        )
        return summary

    async def drain(self):
        """Wait for every in-flight background refresh."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    def register_job(self, scheduler, interval_hours: Optional[int] = None):
        """Add the periodic batch refresh to an AppScheduler."""
        from adaptive_tools.core.jobs.schema_refresh import refresh_stale_schemas

        return scheduler.add_job(
            refresh_stale_schemas,
            "interval",
            hours=interval_hours or settings.schema_refresh_interval_hours,
            id="schema_refresh",
            kwargs={"refresh_scheduler": self}
        )
