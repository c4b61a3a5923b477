# adaptive_tools/core/services/execution/orchestrator.py
"""Per-conversation execution of LLM-requested tool calls."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from adaptive_tools.core.types import (
    ErrorCategory,
    ErrorClassification,
    ExecutionReport,
    RetryContext,
    RetryState,
    ToolCallRequest,
    ToolCallResult,
    ToolDescriptor,
)
from adaptive_tools.core.services.llm.utils.messages import append_tool_results
from .classifier import is_parameter_error
from .retry import RetryCoordinator
from .schema_cache import SchemaCache


class ExecutionOrchestrator:
    """
    Executes batches of tool calls for one conversation.

    The orchestrator owns the conversation's message list: after each batch it
    appends one `tool` message per call (in request order) followed by the
    guidance `system` messages. The caller appends the assistant message that
    carried the tool calls before calling execute_all().

    Retry contexts are keyed by tool name. A request for a tool whose context
    is awaiting a corrected call continues that context as its next attempt.
    """

    def __init__(
        self,
        transport,
        coordinator: RetryCoordinator,
        schema_cache: Optional[SchemaCache] = None,
        refresh_scheduler=None,
        messages: Optional[List[Dict[str, Any]]] = None,
        user_intent: Optional[str] = None,
        max_concurrency: Optional[int] = None,
        max_attempts: Optional[int] = None
    ):
        self.transport = transport
        self.coordinator = coordinator
        self.schema_cache = schema_cache
        self.refresh_scheduler = refresh_scheduler
        self.messages: List[Dict[str, Any]] = messages if messages is not None else []
        self.user_intent = user_intent
        self.max_attempts = max_attempts or settings.max_tool_attempts
        self.contexts: Dict[str, RetryContext] = {}
        self._all_contexts: List[RetryContext] = []

        limit = max_concurrency or getattr(transport, "max_concurrency", None) or settings.max_concurrent_tool_calls
        self._semaphore = asyncio.Semaphore(limit)

    @property
    def pending_contexts(self) -> List[RetryContext]:
        return [ctx for ctx in self._all_contexts if ctx.state == RetryState.GUIDANCE_ISSUED]

    @property
    def requires_llm_retry(self) -> bool:
        return bool(self.pending_contexts)

    def current_user_intent(self) -> str:
        if self.user_intent:
            return self.user_intent
        for message in reversed(self.messages):
            if message.get("role") == "user" and isinstance(message.get("content"), str):
                return message["content"]
        return ""

    def _context_for(self, request: ToolCallRequest) -> RetryContext:
        for context in self.pending_contexts:
            if context.tool_name == request.tool_name:
                context.begin_attempt(request)
                logger.info(
                    f"🔄 Continuing {request.tool_name} with corrected call "
                    f"(attempt {context.attempts}/{context.max_attempts})"
                )
                self.contexts[request.tool_name] = context
                return context

        context = self.coordinator.new_context(request, max_attempts=self.max_attempts)
        self.contexts[request.tool_name] = context
        self._all_contexts.append(context)
        return context

    async def execute_all(self, requests: List[ToolCallRequest]) -> ExecutionReport:
        """
        Execute every request concurrently and feed the outcome back into the conversation.

        Returns:
            ExecutionReport with one result per request, in request order
        """
        if not requests:
            return ExecutionReport()

        # Resolve contexts before any await so two calls never claim the same one
        contexts = [self._context_for(request) for request in requests]
        outcomes = await asyncio.gather(*(self._run(context) for context in contexts))

        results = [result for result, _ in outcomes]
        guidance = [message for _, message in outcomes if message]

        append_tool_results(self.messages, results)
        for message in guidance:
            self.messages.append({"role": "system", "content": message})

        report = ExecutionReport(
            results=results,
            requires_llm_retry=bool(guidance),
            guidance_messages=guidance
        )
        logger.info(
            f"📊 Batch done: {len(report.successes)} succeeded, {len(report.failures)} failed, "
            f"requires_llm_retry={report.requires_llm_retry}"
        )
        return report

    async def _run(self, context: RetryContext) -> Tuple[ToolCallResult, Optional[str]]:
        result = await self._invoke(context.current_request)

        while True:
            if result.success:
                return self.coordinator.handle_success(context, result), None

            descriptor = await self._descriptor(context.tool_name)
            decision = await self.coordinator.handle_failure(
                context, result, self.current_user_intent(), descriptor
            )
            await self._note_failure(context.tool_name, result, decision.classification)

            if decision.is_final:
                return decision.final_result, None

            if decision.should_retry_via_llm:
                return result.with_attempts(context.attempts).with_retry_flag(True), decision.guidance_message

            if decision.retry_delay:
                await asyncio.sleep(decision.retry_delay)
            context.begin_attempt(decision.retry_request)
            result = await self._invoke(decision.retry_request)

    async def _invoke(self, request: ToolCallRequest) -> ToolCallResult:
        async with self._semaphore:
            try:
                return await self.transport.execute(request)
            except Exception as e:
                logger.error(f"❌ Transport error for {request.tool_name}: {e}", exc_info=True)
                return ToolCallResult.failed(request, error=str(e) or type(e).__name__)

    async def _descriptor(self, tool_name: str) -> Optional[ToolDescriptor]:
        if self.schema_cache is None:
            return None
        try:
            entry = await self.schema_cache.get(tool_name)
        except Exception as e:
            logger.warning(f"⚠️ Schema cache read failed for {tool_name}: {e}")
            return None
        return entry.descriptor if entry else None

    async def _note_failure(
        self,
        tool_name: str,
        result: ToolCallResult,
        classification: Optional[ErrorClassification]
    ):
        if classification is not None:
            parameter_error = classification.retryable and classification.category == ErrorCategory.PARAMETER
        else:
            parameter_error = is_parameter_error(result.error or "", result.error_code)
        if not parameter_error:
            return

        if self.schema_cache is not None:
            try:
                await self.schema_cache.mark_refresh_needed(tool_name, result.error or "")
            except Exception as e:
                logger.warning(f"⚠️ Could not mark {tool_name} for refresh: {e}")

        if self.refresh_scheduler is not None:
            self.refresh_scheduler.refresh_if_stale(tool_name)

    def finalize(self) -> List[ToolCallResult]:
        """
        Close every context still waiting for a corrected call.

        Returns:
            The last failure of each closed context, as a terminal result
        """
        closed = []
        for context in self.pending_contexts:
            context.mark_failed()
            last = context.last_result
            logger.info(
                f"🛑 {context.tool_name} abandoned after {context.attempts}/{context.max_attempts} attempt(s)"
            )
            if last is not None:
                closed.append(last.with_attempts(context.attempts).with_retry_flag(False))
        return closed
