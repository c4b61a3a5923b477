# adaptive_tools/core/engine.py
"""Wires the execution components together."""

from typing import Any, Dict, List, Optional

from adaptive_tools.config.logger import logger
from adaptive_tools.core.services.execution.classifier import ErrorClassifier
from adaptive_tools.core.services.execution.conversation import ConversationLoop
from adaptive_tools.core.services.execution.inferencer import ParameterInferencer
from adaptive_tools.core.services.execution.orchestrator import ExecutionOrchestrator
from adaptive_tools.core.services.execution.refresh import RefreshScheduler
from adaptive_tools.core.services.execution.retry import RetryCoordinator
from adaptive_tools.core.services.execution.schema_cache import SchemaCache


class ToolEngine:
    """
    Shared, long-lived components. One instance per process.

    Orchestrators and conversation loops are per conversation and are created
    through new_orchestrator() / new_conversation().
    """

    def __init__(self, llm, transport, discovery, schema_cache: SchemaCache):
        self.llm = llm
        self.transport = transport
        self.discovery = discovery
        self.schema_cache = schema_cache
        self.classifier = ErrorClassifier(llm)
        self.inferencer = ParameterInferencer(llm)
        self.coordinator = RetryCoordinator(self.classifier, self.inferencer)
        self.refresh_scheduler = RefreshScheduler(schema_cache, discovery)

    def new_orchestrator(
        self,
        messages: Optional[List[Dict[str, Any]]] = None,
        user_intent: Optional[str] = None
    ) -> ExecutionOrchestrator:
        return ExecutionOrchestrator(
            transport=self.transport,
            coordinator=self.coordinator,
            schema_cache=self.schema_cache,
            refresh_scheduler=self.refresh_scheduler,
            messages=messages,
            user_intent=user_intent
        )

    def new_conversation(self, messages: Optional[List[Dict[str, Any]]] = None) -> ConversationLoop:
        return ConversationLoop(self.llm, self.new_orchestrator(messages))

    async def warm_cache(self):
        """Initial batch refresh at startup; failures are logged, not raised."""
        try:
            await self.refresh_scheduler.refresh_all_stale()
        except Exception as e:
            logger.error(f"❌ Initial schema refresh failed: {e}")

    async def shutdown(self):
        await self.refresh_scheduler.drain()
