"""
Unit tests for LLM service abstraction layer
"""
import json

import pytest
from unittest.mock import patch, MagicMock

from evaluation.llm_providers import (
    BaseLLMService,
    OpenAIService,
    ClaudeService,
    MockLLMService,
    get_llm_service,
)
from evaluation.llm_providers.claude_service import _normalize_messages
from evaluation.llm_providers.mock_service import MOCK_QUESTIONS, MOCK_RECOMMENDATIONS, MOCK_SUMMARY_TEXT

TOOL = {"name": "generate_recommendations", "description": "d", "parameters": {"type": "object"}}


class TestMockLLMService:
    """Mock service returns fixed questions, then recommendations."""

    def test_generate_returns_mock_text(self):
        result = MockLLMService().generate(system_message="sys", user_message="Resumen")
        assert result == MOCK_SUMMARY_TEXT
        assert "[Mock]" in result

    def test_chat_asks_questions_before_threshold(self):
        reply = MockLLMService().chat("sys", [{"role": "user", "content": "Hola"}], tools=[TOOL])
        assert reply.text == MOCK_QUESTIONS[0]
        assert reply.tool_calls == []

    def test_chat_returns_tool_call_at_threshold(self):
        messages = [{"role": "user", "content": str(i)} for i in range(3)]
        reply = MockLLMService().chat("sys", messages, tools=[TOOL])
        call = reply.find_tool_call("generate_recommendations")
        assert call is not None
        assert len(call.arguments["recommendations"]) == len(MOCK_RECOMMENDATIONS)

    def test_chat_without_tool_never_calls_it(self):
        messages = [{"role": "user", "content": str(i)} for i in range(5)]
        reply = MockLLMService().chat("sys", messages)
        assert reply.tool_calls == []
        assert reply.text


class TestOpenAIService:
    """OpenAI service (mocked API call)."""

    def test_generate_calls_openai_api(self):
        service = OpenAIService(api_key="test-key")
        mock_response = MagicMock()
        mock_response.choices = [MagicMock()]
        mock_response.choices[0].message.content = "Resumen generado"

        with patch("evaluation.llm_providers.openai_service.OpenAI") as mock_openai:
            mock_client = MagicMock()
            mock_client.chat.completions.create.return_value = mock_response
            mock_openai.return_value = mock_client

            result = service.generate(system_message="sys", user_message="user")
            assert result == "Resumen generado"
            mock_client.chat.completions.create.assert_called_once()

    def test_chat_parses_tool_calls(self):
        service = OpenAIService(api_key="test-key")
        tool_call = MagicMock()
        tool_call.function.name = "generate_recommendations"
        tool_call.function.arguments = json.dumps({"recommendations": [{"title": "Ayuno"}]})
        mock_response = MagicMock()
        mock_response.choices = [MagicMock()]
        mock_response.choices[0].message.content = None
        mock_response.choices[0].message.tool_calls = [tool_call]

        with patch("evaluation.llm_providers.openai_service.OpenAI") as mock_openai:
            mock_client = MagicMock()
            mock_client.chat.completions.create.return_value = mock_response
            mock_openai.return_value = mock_client

            reply = service.chat("sys", [{"role": "user", "content": "Hola"}], tools=[TOOL])

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["tools"][0]["type"] == "function"
        assert kwargs["tools"][0]["function"]["name"] == "generate_recommendations"
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert reply.text == ""
        assert reply.tool_calls[0].arguments == {"recommendations": [{"title": "Ayuno"}]}

    def test_chat_skips_malformed_tool_arguments(self):
        service = OpenAIService(api_key="test-key")
        tool_call = MagicMock()
        tool_call.function.name = "generate_recommendations"
        tool_call.function.arguments = "{not json"
        mock_response = MagicMock()
        mock_response.choices = [MagicMock()]
        mock_response.choices[0].message.content = "Texto"
        mock_response.choices[0].message.tool_calls = [tool_call]

        with patch("evaluation.llm_providers.openai_service.OpenAI") as mock_openai:
            mock_openai.return_value.chat.completions.create.return_value = mock_response
            reply = service.chat("sys", [{"role": "user", "content": "Hola"}], tools=[TOOL])
        assert reply.tool_calls == []
        assert reply.text == "Texto"

    def test_missing_api_key_raises(self):
        service = OpenAIService(api_key="")
        with pytest.raises(ValueError) as exc_info:
            service.generate("sys", "user")
        assert "OPENAI_API_KEY" in str(exc_info.value)


class TestClaudeService:
    """Claude service (mocked API call)."""

    def test_generate_calls_claude_api(self):
        service = ClaudeService(api_key="test-key")
        mock_content = MagicMock()
        mock_content.type = "text"
        mock_content.text = "Claude generated content"
        mock_message = MagicMock()
        mock_message.content = [mock_content]

        with patch("evaluation.llm_providers.claude_service.Anthropic") as mock_anthropic:
            mock_client = MagicMock()
            mock_client.messages.create.return_value = mock_message
            mock_anthropic.return_value = mock_client

            result = service.generate(system_message="sys", user_message="user")
            assert result == "Claude generated content"
            mock_client.messages.create.assert_called_once()

    def test_chat_returns_tool_use_block(self):
        service = ClaudeService(api_key="test-key")
        block = MagicMock()
        block.type = "tool_use"
        block.name = "generate_recommendations"
        block.input = {"recommendations": []}
        mock_message = MagicMock()
        mock_message.content = [block]

        with patch("evaluation.llm_providers.claude_service.Anthropic") as mock_anthropic:
            mock_client = MagicMock()
            mock_client.messages.create.return_value = mock_message
            mock_anthropic.return_value = mock_client

            reply = service.chat("sys", [{"role": "assistant", "content": "Hola"}], tools=[TOOL])

        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["tools"][0]["input_schema"] == {"type": "object"}
        assert kwargs["messages"][0]["role"] == "user"
        assert reply.find_tool_call("generate_recommendations").arguments == {"recommendations": []}

    def test_normalize_merges_consecutive_roles(self):
        messages = [
            {"role": "user", "content": "a"},
            {"role": "user", "content": "b"},
            {"role": "assistant", "content": "c"},
        ]
        assert _normalize_messages(messages) == [
            {"role": "user", "content": "a\n\nb"},
            {"role": "assistant", "content": "c"},
        ]

    def test_missing_api_key_raises(self):
        service = ClaudeService(api_key="")
        with pytest.raises(ValueError) as exc_info:
            service.generate("sys", "user")
        assert "ANTHROPIC_API_KEY" in str(exc_info.value)


class TestGetLLMService:
    """Factory function."""

    def test_mock_mode_returns_mock(self):
        with patch("evaluation.llm_providers.factory.settings") as mock_settings:
            mock_settings.USE_MOCK_LLM = True
            mock_settings.LLM_PROVIDER = "openai"
            service = get_llm_service()
            assert isinstance(service, MockLLMService)

    def test_openai_mode_returns_openai(self):
        with patch("evaluation.llm_providers.factory.settings") as mock_settings:
            mock_settings.USE_MOCK_LLM = False
            mock_settings.LLM_PROVIDER = "openai"
            service = get_llm_service()
            assert isinstance(service, OpenAIService)
            assert isinstance(service, BaseLLMService)

    def test_explicit_provider_overrides_settings(self):
        with patch("evaluation.llm_providers.factory.settings") as mock_settings:
            mock_settings.USE_MOCK_LLM = False
            mock_settings.LLM_PROVIDER = "openai"
            service = get_llm_service(provider="claude")
            assert isinstance(service, ClaudeService)

    def test_unknown_provider_raises(self):
        with patch("evaluation.llm_providers.factory.settings") as mock_settings:
            mock_settings.USE_MOCK_LLM = False
            with pytest.raises(ValueError) as exc_info:
                get_llm_service(provider="unknown")
            assert "Unknown LLM provider" in str(exc_info.value)

    def test_provider_alias(self):
        with patch("evaluation.llm_providers.factory.settings") as mock_settings:
            mock_settings.USE_MOCK_LLM = False
            service = get_llm_service(provider="Anthropic")
            assert isinstance(service, ClaudeService)
