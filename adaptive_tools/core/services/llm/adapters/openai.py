# adaptive_tools/core/services/llm/adapters/openai.py
"""Adapter pour OpenAI API."""

import json
from typing import Dict, Any, List, Optional
import httpx
from openai import AsyncOpenAI
from adaptive_tools.config.logger import logger
from adaptive_tools.core.types import LLMTurn, ToolCallRequest, ToolDescriptor
from .base import BaseAdapter
from ..utils.messages import tool_to_openai


class OpenAIAdapter(BaseAdapter):
    """Adapter pour l'API OpenAI."""

    def __init__(self, api_key: str, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(api_key)
        self.client = AsyncOpenAI(
            api_key=api_key,
            http_client=http_client  # Use pooled client if provided
        )

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        json_mode: bool = False,
        **params
    ) -> str:
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(
                messages=messages,
                **params
            )
        except Exception as e:
            logger.error(f"OpenAI completion error: {e}")
            raise

        return response.choices[0].message.content or ""

    async def complete_with_tools(
        self,
        messages: List[Dict[str, Any]],
        tools: List[ToolDescriptor],
        **params
    ) -> LLMTurn:
        request = {"messages": messages, **params}
        if tools:
            request["tools"] = [tool_to_openai(tool) for tool in tools]

        try:
            response = await self.client.chat.completions.create(**request)
        except Exception as e:
            logger.error(f"OpenAI completion with tools error: {e}")
            raise

        message = response.choices[0].message
        tool_calls = []
        for tc in message.tool_calls or []:
            raw_arguments = tc.function.arguments or ""
            try:
                arguments = json.loads(raw_arguments) if raw_arguments.strip() else {}
            except json.JSONDecodeError as e:
                logger.warning(f"Failed to parse tool arguments: {e}. Buffer: {raw_arguments}")
                arguments = {}
            tool_calls.append(ToolCallRequest(
                tool_name=tc.function.name,
                arguments=arguments,
                id=tc.id
            ))

        return LLMTurn(text=message.content or "", tool_calls=tool_calls)

    def is_retriable_error(self, exception: Exception) -> bool:
        """Détermine si l'erreur OpenAI est retriable."""
        status_code = getattr(exception, 'status_code', None)

        # Rate limits, server errors, timeouts
        if status_code in [429, 500, 502, 503, 504]:
            return True

        if 'rate_limit' in str(exception).lower():
            return True

        return isinstance(exception, (httpx.TimeoutException, httpx.ConnectError))
