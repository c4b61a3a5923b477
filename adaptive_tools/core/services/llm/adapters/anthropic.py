# adaptive_tools/core/services/llm/adapters/anthropic.py
"""Adapter pour Anthropic Claude API."""

from typing import Dict, Any, List, Optional
import httpx
from anthropic import AsyncAnthropic
from adaptive_tools.config.logger import logger
from adaptive_tools.core.types import LLMTurn, ToolCallRequest, ToolDescriptor
from .base import BaseAdapter
from ..registry import PROVIDERS
from ..utils.messages import to_anthropic_messages, tool_to_anthropic


class AnthropicAdapter(BaseAdapter):
    """Adapter pour l'API Anthropic Claude."""

    def __init__(self, api_key: str, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(api_key)
        self.client = AsyncAnthropic(
            api_key=api_key,
            http_client=http_client  # Use pooled client if provided
        )

    def _build_request(self, messages: List[Dict[str, Any]], **params) -> Dict[str, Any]:
        system_prompt, anthropic_messages = to_anthropic_messages(messages)

        if "max_tokens" not in params:
            params["max_tokens"] = PROVIDERS["anthropic"]["max_tokens"]["default"]

        request = {"messages": anthropic_messages, **params}
        # Ne passer 'system' que s'il existe (le SDK refuse None)
        if system_prompt:
            request["system"] = system_prompt

        logger.debug(f"Model: {params.get('model')}, Messages count: {len(anthropic_messages)}")
        return request

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        json_mode: bool = False,
        **params
    ) -> str:
        # Pas de mode JSON natif : le prompt demande déjà du JSON
        request = self._build_request(messages, **params)
        try:
            response = await self.client.messages.create(**request)
        except Exception as e:
            logger.error(f"❌ Anthropic API error: {e}")
            raise

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    async def complete_with_tools(
        self,
        messages: List[Dict[str, Any]],
        tools: List[ToolDescriptor],
        **params
    ) -> LLMTurn:
        request = self._build_request(messages, **params)
        if tools:
            request["tools"] = [tool_to_anthropic(tool) for tool in tools]
            logger.debug(f"🔧 Anthropic tools count: {len(tools)}")

        try:
            response = await self.client.messages.create(**request)
        except Exception as e:
            logger.error(f"❌ Anthropic API error (with tools): {e}")
            raise

        text_parts = []
        tool_calls = []
        for block in response.content:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text_parts.append(block.text)
            elif block_type == "tool_use":
                tool_calls.append(ToolCallRequest(
                    tool_name=block.name,
                    arguments=block.input or {},
                    id=block.id
                ))

        return LLMTurn(text="".join(text_parts), tool_calls=tool_calls)

    def is_retriable_error(self, exception: Exception) -> bool:
        """Détermine si l'erreur Anthropic est retriable."""
        status_code = getattr(exception, 'status_code', None)

        # Rate limits, server errors, timeouts
        if status_code in [429, 500, 502, 503, 504]:
            return True

        # Overloaded errors
        if status_code == 529:
            return True

        return isinstance(exception, (httpx.TimeoutException, httpx.ConnectError))
