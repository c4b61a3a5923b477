# adaptive_tools/core/services/execution/conversation.py
"""Conversation-level driver: LLM turn, tool batch, guided re-invocations, final reply."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from adaptive_tools.core.types import LLMTurn, ToolCallResult, ToolDescriptor
from adaptive_tools.core.services.llm.utils.messages import append_tool_calls
from .orchestrator import ExecutionOrchestrator


@dataclass
class ConversationOutcome:
    text: str
    results: List[ToolCallResult] = field(default_factory=list)
    rounds: int = 0
    requires_llm_retry: bool = False


class ConversationLoop:
    """
    Re-invokes the LLM while the orchestrator asks for a guided retry.

    At most `max_rounds` tool batches run per user message. Contexts still
    waiting for a correction when the loop stops are closed as failures.
    """

    def __init__(
        self,
        llm,
        orchestrator: ExecutionOrchestrator,
        max_rounds: Optional[int] = None,
        model: Optional[str] = None
    ):
        self.llm = llm
        self.orchestrator = orchestrator
        self.max_rounds = max_rounds or settings.max_tool_attempts
        self.model = model or settings.conversation_model

    async def run(self, messages: List[Dict[str, Any]], tools: List[ToolDescriptor]) -> ConversationOutcome:
        """
        Args:
            messages: Conversation so far (mutated in place)
            tools: Tools the agent may call

        Returns:
            ConversationOutcome with the final text and the latest result per tool call
        """
        self.orchestrator.messages = messages
        results: Dict[str, ToolCallResult] = {}

        turn = await self.llm.complete_with_tools(messages, tools, model=self.model)
        if not turn.tool_calls:
            messages.append({"role": "assistant", "content": turn.text})
            return ConversationOutcome(text=turn.text)

        rounds = 0
        final_text = None
        while True:
            rounds += 1
            report = await self._execute(turn)
            for result in report.results:
                results[result.call_id] = result

            if not report.requires_llm_retry:
                break
            if rounds >= self.max_rounds:
                logger.warning(f"🛑 Retry rounds exhausted ({rounds}/{self.max_rounds})")
                break

            logger.info(f"🔁 Re-invoking LLM with guidance (round {rounds + 1}/{self.max_rounds})")
            turn = await self.llm.complete_with_tools(messages, tools, model=self.model)
            if not turn.tool_calls:
                final_text = turn.text
                break

        for result in self.orchestrator.finalize():
            results[result.call_id] = result

        if final_text is None:
            final_text = await self._reflect(messages, list(results.values()))
        messages.append({"role": "assistant", "content": final_text})

        return ConversationOutcome(
            text=final_text,
            results=list(results.values()),
            rounds=rounds,
            requires_llm_retry=self.orchestrator.requires_llm_retry
        )

    async def _execute(self, turn: LLMTurn):
        append_tool_calls(self.orchestrator.messages, turn.tool_calls, turn.text)
        return await self.orchestrator.execute_all(turn.tool_calls)

    async def _reflect(self, messages: List[Dict[str, Any]], results: List[ToolCallResult]) -> str:
        """Final answer without tools, built from the whole conversation."""
        try:
            turn = await self.llm.complete_with_tools(messages, [], model=self.model)
            if turn.text:
                return turn.text
        except Exception as e:
            logger.error(f"❌ Final reflection call failed: {e}")

        failures = [r.failure_notice() for r in results if not r.success]
        if failures:
            return "\n".join(failures)
        return "Done."
