"""Unit tests for LLM Gateway."""

import pytest
from unittest.mock import patch

from adaptive_tools.core.exceptions import CircuitBreakerOpenError, LLMResponseError
from adaptive_tools.core.services.llm.adapters.base import BaseAdapter
from adaptive_tools.core.services.llm.gateway import LLMGateway
from adaptive_tools.core.services.llm.registry import build_params, get_provider_from_model
from adaptive_tools.core.types import LLMTurn, ToolCallRequest
from adaptive_tools.core.utils.circuit_breaker import CircuitState


class MockAdapter(BaseAdapter):
    """Mock adapter for testing."""

    def __init__(self, api_key: str = "test"):
        super().__init__(api_key)
        self.calls = []
        self.failures = []
        self.text = "Hello"
        self.turn = LLMTurn(text="", tool_calls=[ToolCallRequest("crm_lookup", {"customer_id": "42"})])

    def _maybe_fail(self):
        if self.failures:
            raise self.failures.pop(0)

    async def complete(self, messages, json_mode=False, **params):
        self.calls.append({"messages": messages, "json_mode": json_mode, **params})
        self._maybe_fail()
        return self.text

    async def complete_with_tools(self, messages, tools, **params):
        self.calls.append({"messages": messages, "tools": tools, **params})
        self._maybe_fail()
        return self.turn

    def is_retriable_error(self, exception):
        """Mock retriable error check."""
        return getattr(exception, 'status_code', None) in [429, 500, 502, 503, 504]


def _http_error(status_code: int) -> Exception:
    error = Exception(f"HTTP {status_code}")
    error.status_code = status_code
    return error


@pytest.fixture
def gateway():
    """Gateway without API keys, with a mock OpenAI adapter registered."""
    with patch('adaptive_tools.core.services.llm.gateway.settings') as mock_settings:
        mock_settings.openai_api_key = ""
        mock_settings.anthropic_api_key = ""
        mock_settings.conversation_model = "gpt-4o-mini"
        llm_gateway = LLMGateway(max_retries=2, retry_wait_max=1)
        adapter = MockAdapter()
        llm_gateway.register_adapter("openai", adapter)
        yield llm_gateway, adapter


class TestRegistry:

    def test_provider_from_model(self):
        assert get_provider_from_model("gpt-4o-mini") == "openai"
        assert get_provider_from_model("o3-mini") == "openai"
        assert get_provider_from_model("claude-haiku-3-5") == "anthropic"
        with pytest.raises(ValueError):
            get_provider_from_model("mistral-large")

    def test_build_params_clamps_and_drops_none(self):
        params = build_params("anthropic", "claude-haiku-3-5", temperature=1.7, max_tokens=None)

        assert params == {"model": "claude-haiku-3-5", "temperature": 1.0, "max_tokens": 2048}

    def test_build_params_openai_caps_max_tokens(self):
        params = build_params("openai", "gpt-4o", max_tokens=99999)

        assert params == {"model": "gpt-4o", "max_tokens": 16000}


class TestGatewayInitialization:

    def test_init_without_api_keys(self):
        with patch('adaptive_tools.core.services.llm.gateway.settings') as mock_settings:
            mock_settings.openai_api_key = ""
            mock_settings.anthropic_api_key = ""

            llm_gateway = LLMGateway()

        assert llm_gateway.adapters == {}
        assert set(llm_gateway.circuit_breakers) == {"openai", "anthropic"}

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, gateway):
        llm_gateway, _ = gateway

        with pytest.raises(ValueError, match="anthropic"):
            await llm_gateway.complete([{"role": "user", "content": "Hi"}], model="claude-haiku-3-5")


class TestGatewayComplete:

    @pytest.mark.asyncio
    async def test_complete_routes_to_provider(self, gateway):
        llm_gateway, adapter = gateway

        text = await llm_gateway.complete(
            [{"role": "user", "content": "Hi"}], model="gpt-4o-mini", max_tokens=100, json_mode=True
        )

        assert text == "Hello"
        assert adapter.calls[0]["model"] == "gpt-4o-mini"
        assert adapter.calls[0]["temperature"] == 0.0
        assert adapter.calls[0]["max_tokens"] == 100
        assert adapter.calls[0]["json_mode"] is True

    @pytest.mark.asyncio
    async def test_empty_response_raises(self, gateway):
        llm_gateway, adapter = gateway
        adapter.text = "   "

        with pytest.raises(LLMResponseError):
            await llm_gateway.complete([{"role": "user", "content": "Hi"}], model="gpt-4o-mini")

    @pytest.mark.asyncio
    async def test_non_retriable_error_is_not_retried(self, gateway):
        llm_gateway, adapter = gateway
        adapter.failures = [_http_error(400)]

        with pytest.raises(Exception, match="HTTP 400"):
            await llm_gateway.complete([{"role": "user", "content": "Hi"}], model="gpt-4o-mini")

        assert len(adapter.calls) == 1

    @pytest.mark.asyncio
    async def test_retriable_error_is_retried(self, gateway):
        llm_gateway, adapter = gateway
        adapter.failures = [_http_error(503)]

        text = await llm_gateway.complete([{"role": "user", "content": "Hi"}], model="gpt-4o-mini")

        assert text == "Hello"
        assert len(adapter.calls) == 2
        assert llm_gateway.circuit_breakers["openai"].failure_count == 0

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self, gateway):
        llm_gateway, adapter = gateway
        circuit = llm_gateway.circuit_breakers["openai"]
        for _ in range(circuit.failure_threshold):
            await circuit.record_failure()

        with pytest.raises(CircuitBreakerOpenError):
            await llm_gateway.complete([{"role": "user", "content": "Hi"}], model="gpt-4o-mini")

        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_failures_open_the_circuit(self, gateway):
        llm_gateway, adapter = gateway
        circuit = llm_gateway.circuit_breakers["openai"]

        for _ in range(circuit.failure_threshold):
            adapter.failures = [_http_error(401)]
            with pytest.raises(Exception):
                await llm_gateway.complete([{"role": "user", "content": "Hi"}], model="gpt-4o-mini")

        assert circuit.state == CircuitState.OPEN
        assert llm_gateway.get_circuit_states()["openai"]["state"] == "open"


class TestGatewayTools:

    @pytest.mark.asyncio
    async def test_complete_with_tools(self, gateway):
        llm_gateway, adapter = gateway

        turn = await llm_gateway.complete_with_tools(
            [{"role": "user", "content": "Open customer 42"}], [], model="gpt-4o-mini"
        )

        assert turn.tool_calls[0].tool_name == "crm_lookup"
        assert adapter.calls[0]["tools"] == []
        assert "temperature" not in adapter.calls[0]
