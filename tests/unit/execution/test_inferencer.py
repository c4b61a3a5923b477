"""Unit tests for missing-parameter extraction and value inference."""

import pytest

from adaptive_tools.core.exceptions import LLMResponseError
from adaptive_tools.core.services.execution.inferencer import (
    MAX_VALUE_LENGTH,
    ParameterInferencer,
    extract_parameter_name,
)
from tests.mocks.fakes import FakeLLM


class TestExtractParameterName:

    @pytest.mark.parametrize("message,expected", [
        ("Missing required parameter: searchValue", "searchValue"),
        ("missing required property 'query'", "query"),
        ("Parameter 'to' is missing", "to"),
        ("Field 'message_text' is undefined", "message_text"),
        ("'customer_id' is a required property", "customer_id"),
        ("required property customer_id not found", "customer_id"),
        ("searchValue is required", "searchValue"),
        ("Invalid value for 'date'", "date"),
        ('[{"code": "invalid_type", "path": ["searchValue"], "message": "Required"}]', "searchValue"),
        ("query\n  Field required [type=missing]", "query"),
    ])
    def test_known_formats(self, message, expected):
        assert extract_parameter_name(message) == expected

    def test_no_name(self):
        assert extract_parameter_name("Something odd happened") is None
        assert extract_parameter_name("") is None

    def test_generic_words_are_not_names(self):
        assert extract_parameter_name("This parameter is required") is None


class TestInferValue:

    @pytest.mark.asyncio
    async def test_alias_value_used_without_llm(self):
        llm = FakeLLM()
        inferencer = ParameterInferencer(llm=llm)

        value = await inferencer.infer_value(
            "microsoft_outlook_find_emails", "searchValue", "find emails from Bob",
            current_arguments={"instructions": "emails from Bob"}
        )

        assert value == "emails from Bob"
        assert llm.complete_calls == []

    @pytest.mark.asyncio
    async def test_llm_value(self, crm_descriptor):
        llm = FakeLLM(completions=['"42"\nBecause the user said so'])
        inferencer = ParameterInferencer(llm=llm)

        value = await inferencer.infer_value("crm_lookup", "customer_id", "open customer 42", tool_schema=crm_descriptor)

        assert value == "42"
        prompt = llm.complete_calls[0]["messages"][0]["content"]
        assert "customer_id (string): CRM customer id" in prompt
        assert "open customer 42" in prompt

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", ["CANNOT_INFER", "none", "N/A", "   "])
    async def test_cannot_infer(self, answer):
        inferencer = ParameterInferencer(llm=FakeLLM(completions=[answer]))

        assert await inferencer.infer_value("crm_lookup", "customer_id", "find Bob") is None

    @pytest.mark.asyncio
    async def test_llm_failure_returns_none(self):
        inferencer = ParameterInferencer(llm=FakeLLM(completions=[LLMResponseError("Empty response")]))

        assert await inferencer.infer_value("crm_lookup", "customer_id", "find Bob") is None

    @pytest.mark.asyncio
    async def test_no_llm_or_no_intent(self):
        assert await ParameterInferencer(llm=None).infer_value("crm_lookup", "customer_id", "find Bob") is None

        llm = FakeLLM(default_completion="42")
        assert await ParameterInferencer(llm=llm).infer_value("crm_lookup", "customer_id", "") is None
        assert llm.complete_calls == []

    @pytest.mark.asyncio
    async def test_value_is_truncated(self):
        inferencer = ParameterInferencer(llm=FakeLLM(completions=["x" * 2000]))

        value = await inferencer.infer_value("notes_create", "body", "write a long note")

        assert len(value) == MAX_VALUE_LENGTH


class TestInferFromError:

    @pytest.mark.asyncio
    async def test_name_from_error(self):
        inferencer = ParameterInferencer(llm=FakeLLM(completions=["42"]))

        param, value = await inferencer.infer_from_error(
            "crm_lookup", "Missing required parameter: customer_id", "open customer 42"
        )

        assert (param, value) == ("customer_id", "42")

    @pytest.mark.asyncio
    async def test_name_from_schema_when_error_is_vague(self, crm_descriptor):
        inferencer = ParameterInferencer(llm=FakeLLM(completions=["42"]))

        param, value = await inferencer.infer_from_error(
            "crm_lookup", "Invalid input", "open customer 42", tool_schema=crm_descriptor,
            current_arguments={"name": "Bob"}
        )

        assert (param, value) == ("customer_id", "42")

    @pytest.mark.asyncio
    async def test_nothing_identified(self):
        llm = FakeLLM()
        inferencer = ParameterInferencer(llm=llm)

        assert await inferencer.infer_from_error("crm_lookup", "Invalid input", "open customer 42") == (None, None)
        assert llm.complete_calls == []
