"""
End-to-end retry flows against the drifting MCP server (in-process, ASGI).

Real MCP client, transport, discovery, classifier, coordinator and refresh
scheduler. Only the LLM is scripted.
"""

import httpx
import pytest

from adaptive_tools.core.engine import ToolEngine
from adaptive_tools.core.services.execution.schema_cache import InMemorySchemaCache
from adaptive_tools.core.services.mcp.transport import build_mcp_stack
from adaptive_tools.core.types import LLMTurn
from tests.mocks.drifting_mcp_server import create_drifting_server, drift
from tests.mocks.fakes import tool_call

pytestmark = pytest.mark.integration

USER_INTENT = "Find the emails from Bob"


@pytest.fixture
def mcp_app():
    return create_drifting_server()


@pytest.fixture
async def engine(mcp_app, fake_llm, clock):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=mcp_app), base_url="http://mcp.test") as http_client:
        transport, discovery = await build_mcp_stack(
            [{"id": "workspace", "type": "http", "url": "http://mcp.test"}],
            http_client=http_client
        )
        engine = ToolEngine(fake_llm, transport, discovery, InMemorySchemaCache(clock=clock))
        engine.coordinator.transient_retry_delay = 0
        engine.refresh_scheduler.delay_seconds = 0
        yield engine
        await engine.shutdown()


def _calls(mcp_app, tool_name):
    return [call for call in mcp_app.state.calls if call["name"] == tool_name]


class TestSingleBatch:

    @pytest.mark.asyncio
    async def test_misnamed_parameter_fixed_without_llm(self, engine, mcp_app, fake_llm):
        orchestrator = engine.new_orchestrator(user_intent=USER_INTENT)

        report = await orchestrator.execute_all([
            tool_call("microsoft_outlook_find_emails", instructions="Bob")
        ])

        result = report.results[0]
        assert result.success is True
        assert result.attempts == 2
        assert result.payload == {"emails": [{"subject": "Re: Bob"}]}
        assert report.requires_llm_retry is False

        calls = _calls(mcp_app, "microsoft_outlook_find_emails")
        assert len(calls) == 2
        assert calls[1]["arguments"] == {"searchValue": "Bob"}
        assert fake_llm.complete_calls == []

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self, engine, mcp_app, fake_llm):
        orchestrator = engine.new_orchestrator(user_intent="Open my locked mailbox")

        report = await orchestrator.execute_all([tool_call("locked_mailbox", folder="inbox")])

        result = report.results[0]
        assert result.success is False
        assert result.attempts == 1
        assert result.requires_retry is False
        assert "401" in result.error
        assert len(_calls(mcp_app, "locked_mailbox")) == 1
        assert fake_llm.complete_calls == []

    @pytest.mark.asyncio
    async def test_transient_failure_stops_at_budget(self, engine, mcp_app):
        orchestrator = engine.new_orchestrator(user_intent="Weather in Paris?")

        report = await orchestrator.execute_all([tool_call("flaky_weather", city="Paris")])

        result = report.results[0]
        assert result.success is False
        assert result.attempts == 3
        assert result.error == "Weather service timeout"
        assert len(_calls(mcp_app, "flaky_weather")) == 3

    @pytest.mark.asyncio
    async def test_mixed_batch_keeps_request_order(self, engine):
        orchestrator = engine.new_orchestrator(user_intent="Bob's emails and customer 42")
        first = tool_call("crm_lookup", customer_id="42")
        second = tool_call("locked_mailbox")
        third = tool_call("microsoft_outlook_find_emails", searchValue="Bob")

        report = await orchestrator.execute_all([first, second, third])

        assert [r.call_id for r in report.results] == [first.id, second.id, third.id]
        assert [r.success for r in report.results] == [True, False, True]
        tool_messages = [m for m in orchestrator.messages if m["role"] == "tool"]
        assert [m["tool_call_id"] for m in tool_messages] == [first.id, second.id, third.id]


class TestConversation:

    @pytest.mark.asyncio
    async def test_guided_retry_succeeds(self, engine, mcp_app, fake_llm, crm_descriptor):
        fake_llm.completions.append("42")
        fake_llm.turns.extend([
            LLMTurn(tool_calls=[tool_call("crm_lookup", call_id="call_1", name="Bob")]),
            LLMTurn(tool_calls=[tool_call("crm_lookup", call_id="call_2", customer_id="42")]),
            LLMTurn(text="Customer 42 is Bob."),
        ])
        messages = [{"role": "user", "content": "Open customer 42"}]

        outcome = await engine.new_conversation(messages).run(messages, [crm_descriptor])

        assert outcome.text == "Customer 42 is Bob."
        assert outcome.rounds == 2
        final = next(r for r in outcome.results if r.call_id == "call_2")
        assert final.success is True
        assert final.attempts == 2

        # Second LLM turn saw the guidance with the inferred value
        guidance = [m["content"] for m in fake_llm.turn_calls[1]["messages"] if m["role"] == "system"]
        assert len(guidance) == 1
        assert "customer_id" in guidance[0]
        assert "42" in guidance[0]
        assert [c["arguments"] for c in _calls(mcp_app, "crm_lookup")] == [{"name": "Bob"}, {"customer_id": "42"}]

    @pytest.mark.asyncio
    async def test_alias_donation_for_tool_without_rename_rule(self, engine, mcp_app, fake_llm):
        await engine.warm_cache()
        orchestrator = engine.new_orchestrator(user_intent="find emails from John")

        first = await orchestrator.execute_all([
            tool_call("helpdesk_mail_search", instructions="find emails from John")
        ])

        context = orchestrator.contexts["helpdesk_mail_search"]
        assert first.requires_llm_retry is True
        assert len(first.guidance_messages) == 1
        assert context.suggested_request.arguments == {"searchValue": "find emails from John"}
        assert fake_llm.complete_calls == []

        second = await orchestrator.execute_all([context.suggested_request])

        assert second.results[0].success is True
        assert second.results[0].attempts == 2
        assert [c["arguments"] for c in _calls(mcp_app, "helpdesk_mail_search")] == [
            {"instructions": "find emails from John"},
            {"searchValue": "find emails from John"},
        ]

    @pytest.mark.asyncio
    async def test_ignored_guidance_stops_after_three_attempts(self, engine, mcp_app, fake_llm, crm_descriptor):
        fake_llm.turns.extend([
            LLMTurn(tool_calls=[tool_call("crm_lookup", call_id=f"call_{i}", name="Bob")])
            for i in range(1, 4)
        ])
        messages = [{"role": "user", "content": "Open Bob's record"}]

        outcome = await engine.new_conversation(messages).run(messages, [crm_descriptor])

        final = next(r for r in outcome.results if r.call_id == "call_3")
        assert final.success is False
        assert final.attempts == 3
        assert final.requires_retry is False
        assert outcome.requires_llm_retry is False
        assert len(_calls(mcp_app, "crm_lookup")) == 3
        assert outcome.text == "Done."
        assert messages[-1] == {"role": "assistant", "content": "Done."}


class TestSchemaDrift:

    @pytest.mark.asyncio
    async def test_warm_cache_then_drift_triggers_refresh(self, engine, mcp_app):
        await engine.warm_cache()
        before = await engine.schema_cache.get("microsoft_outlook_find_emails")
        assert before.descriptor.required_parameters == ["searchValue"]
        assert await engine.schema_cache.list_tool_names() == [
            "crm_lookup", "flaky_weather", "helpdesk_mail_search", "locked_mailbox", "microsoft_outlook_find_emails"
        ]

        drift(mcp_app, "query")
        orchestrator = engine.new_orchestrator(user_intent=USER_INTENT)
        report = await orchestrator.execute_all([
            tool_call("microsoft_outlook_find_emails", searchValue="Bob")
        ])
        await engine.refresh_scheduler.drain()

        assert report.results[0].success is False
        assert report.requires_llm_retry is True

        after = await engine.schema_cache.get("microsoft_outlook_find_emails")
        assert after.descriptor.required_parameters == ["query"]
        assert after.schema_hash != before.schema_hash
        assert after.refresh_count == 2
        assert after.last_error_message == "Missing required parameter: query"

    @pytest.mark.asyncio
    async def test_parameter_error_caches_unknown_tool(self, engine):
        orchestrator = engine.new_orchestrator(user_intent="Open customer record")

        await orchestrator.execute_all([tool_call("crm_lookup")])
        await engine.refresh_scheduler.drain()

        entry = await engine.schema_cache.get("crm_lookup")
        assert entry is not None
        assert entry.refresh_count == 1
        assert entry.descriptor.server_id == "workspace"
