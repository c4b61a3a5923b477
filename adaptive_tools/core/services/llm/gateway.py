# adaptive_tools/core/services/llm/gateway.py
"""Gateway LLM principal - Point d'entrée unifié pour tous les providers."""

from typing import Any, Callable, Dict, List, Optional
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential
from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from adaptive_tools.core.exceptions import LLMResponseError
from adaptive_tools.core.types import LLMTurn, ToolDescriptor
from adaptive_tools.core.utils.circuit_breaker import CircuitBreaker
from .registry import get_provider_from_model, build_params
from .adapters.base import BaseAdapter
from .adapters.openai import OpenAIAdapter
from .adapters.anthropic import AnthropicAdapter


class LLMGateway:
    """
    Gateway unifié pour accéder à tous les providers LLM.

    Chaque appel passe par le circuit breaker du provider, puis par une
    boucle tenacity qui relance uniquement les erreurs retriables
    (429, 5xx, timeouts). Les erreurs non retriables remontent telles quelles.
    """

    def __init__(self, max_retries: int = 3, retry_wait_max: float = 4.0):
        self.adapters: Dict[str, BaseAdapter] = {}
        self.max_retries = max_retries
        self.retry_wait_max = retry_wait_max

        # Initialize circuit breakers per provider
        self.circuit_breakers = {
            "anthropic": CircuitBreaker(
                name="anthropic",
                failure_threshold=5,
                recovery_timeout=60,
                success_threshold=1
            ),
            "openai": CircuitBreaker(
                name="openai",
                failure_threshold=5,
                recovery_timeout=60,
                success_threshold=1
            )
        }

        self._init_admin_adapters()

    def _init_admin_adapters(self, http_client=None):
        """Initialise les adapters depuis settings (.env)."""
        if settings.openai_api_key:
            self.adapters["openai"] = OpenAIAdapter(settings.openai_api_key, http_client=http_client)
            logger.info("✅ OpenAI adapter initialized")

        if settings.anthropic_api_key:
            self.adapters["anthropic"] = AnthropicAdapter(settings.anthropic_api_key, http_client=http_client)
            logger.info("✅ Anthropic adapter initialized")

        if not self.adapters:
            logger.warning("⚠️ No LLM adapters initialized. Check your API keys.")

    def reinit_with_pooled_client(self):
        """Re-initialize adapters with the pooled HTTP client once the pool exists."""
        from adaptive_tools.core.utils.http_client import get_http_client

        http_client = get_http_client()
        if http_client is None:
            logger.warning("HTTP client pool not available, keeping default LLM clients")
            return
        self._init_admin_adapters(http_client=http_client)

    def register_adapter(self, provider: str, adapter: BaseAdapter):
        self.adapters[provider] = adapter

    def _get_adapter(self, provider: str) -> BaseAdapter:
        if provider not in self.adapters:
            raise ValueError(f"Provider '{provider}' not configured in settings. Check API keys.")
        return self.adapters[provider]

    async def _call(self, provider: str, adapter: BaseAdapter, func: Callable, *args, **kwargs) -> Any:
        """
        Appel protégé : circuit breaker autour d'une boucle de retry tenacity.

        Raises:
            CircuitBreakerOpenError: Si le circuit du provider est ouvert
            Exception: Dernière erreur du provider après épuisement des retries
        """
        async def with_retry():
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=1, min=1, max=self.retry_wait_max),
                retry=retry_if_exception(adapter.is_retriable_error),
                before_sleep=lambda state: logger.warning(
                    f"🔄 {provider} error (retriable): {state.outcome.exception()}. "
                    f"Retry {state.attempt_number}/{self.max_retries}..."
                ),
                reraise=True
            ):
                with attempt:
                    return await func(*args, **kwargs)

        circuit = self.circuit_breakers.get(provider)
        if not circuit:
            return await with_retry()
        return await circuit.call(with_retry)

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: Optional[float] = 0.0,
        max_tokens: Optional[int] = None,
        json_mode: bool = False
    ) -> str:
        """
        Complétion texte simple (classifier, inferencer, réflexion finale).

        Raises:
            LLMResponseError: Si le modèle renvoie une réponse vide
        """
        model = model or settings.conversation_model
        provider = get_provider_from_model(model)
        adapter = self._get_adapter(provider)
        params = build_params(provider, model, temperature=temperature, max_tokens=max_tokens)

        text = await self._call(provider, adapter, adapter.complete, messages, json_mode=json_mode, **params)
        if not text or not text.strip():
            raise LLMResponseError(f"Empty response from {model}", details={"model": model})
        return text

    async def complete_with_tools(
        self,
        messages: List[Dict[str, Any]],
        tools: List[ToolDescriptor],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> LLMTurn:
        """Tour de conversation pouvant demander des tool calls."""
        model = model or settings.conversation_model
        provider = get_provider_from_model(model)
        adapter = self._get_adapter(provider)
        params = build_params(provider, model, temperature=temperature, max_tokens=max_tokens)

        turn = await self._call(provider, adapter, adapter.complete_with_tools, messages, tools, **params)
        if turn.tool_calls:
            logger.info(f"🔧 {model} requested {len(turn.tool_calls)} tool call(s): {[tc.tool_name for tc in turn.tool_calls]}")
        return turn

    def get_circuit_states(self) -> Dict[str, Dict[str, Any]]:
        return {name: circuit.get_state() for name, circuit in self.circuit_breakers.items()}


llm_gateway = LLMGateway()
