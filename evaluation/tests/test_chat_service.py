"""
Tests for the AI chat collaborator: prompt building, tool handling, failure mapping.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from evaluation import chat_service
from evaluation.chat_service import (
    DEFAULT_CHAT_PROMPT,
    RECOMMENDATIONS_READY_MESSAGE,
    build_patient_context,
    converse,
    summarize_conversation,
)
from evaluation.llm_providers import LLMReply, MockLLMService, ToolCall
from evaluation.llm_providers.mock_service import MOCK_SUMMARY_TEXT
from evaluation.models import SystemPrompt
from evaluation.types import ConversationEntry
from preop_eval.exceptions import TransientIO

PATIENT = SimpleNamespace(
    name="María García",
    dni="12345678",
    procedure="Colecistectomía",
    procedure_date="2025-03-10",
)


def _history(*texts):
    return [ConversationEntry(role="patient", content=t) for t in texts]


def _service_returning(reply):
    service = MagicMock()
    service.provider_id = "fake"
    service.chat.return_value = reply
    return service


class TestBuildPatientContext:

    def test_without_questionnaire(self):
        context = build_patient_context(PATIENT)
        assert "Nombre: María García" in context
        assert "Procedimiento: Colecistectomía" in context
        assert "formulario" not in context

    def test_with_questionnaire(self, questionnaire_payload):
        context = build_patient_context(PATIENT, questionnaire_payload)
        assert "Alergias: Penicilina" in context
        assert "Fumador: No" in context
        assert "Horas de sueño: 7" in context
        assert "Contacto de emergencia: Juan García" in context


@pytest.mark.django_db
class TestConverse:

    def test_plain_reply(self):
        service = _service_returning(LLMReply(text="¿Tiene alergias?"))
        with patch("evaluation.chat_service.get_llm_service", return_value=service):
            reply = converse(_history("Hola"), "ctx")
        assert reply.text == "¿Tiene alergias?"
        assert reply.recommendations_generated is False

        kwargs = service.chat.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "Hola"}]
        assert kwargs["tools"][0]["name"] == "generate_recommendations"
        assert kwargs["system_message"].startswith(DEFAULT_CHAT_PROMPT)

    def test_assistant_history_maps_to_assistant_role(self):
        service = _service_returning(LLMReply(text="ok"))
        history = [
            ConversationEntry(role="assistant", content="Bienvenido"),
            ConversationEntry(role="patient", content="Hola"),
        ]
        with patch("evaluation.chat_service.get_llm_service", return_value=service):
            converse(history, "ctx")
        roles = [m["role"] for m in service.chat.call_args.kwargs["messages"]]
        assert roles == ["assistant", "user"]

    def test_tool_call_returns_recommendations(self):
        service = _service_returning(LLMReply(tool_calls=[ToolCall(
            name="generate_recommendations",
            arguments={"recommendations": [
                {"title": "Ayuno", "description": "8 horas", "category": "preoperatorio", "priority": "alta"},
                {"title": "", "description": "sin título", "category": "riesgo", "priority": "baja"},
            ]},
        )]))
        with patch("evaluation.chat_service.get_llm_service", return_value=service):
            reply = converse(_history("Hola"), "ctx")
        assert reply.recommendations_generated is True
        assert reply.text == RECOMMENDATIONS_READY_MESSAGE
        assert [r.title for r in reply.recommendations] == ["Ayuno"]
        assert reply.recommendations[0].priority == "high"

    def test_tool_call_without_usable_items_falls_back_to_text(self):
        service = _service_returning(LLMReply(
            text="Necesito más información",
            tool_calls=[ToolCall(name="generate_recommendations", arguments={"recommendations": []})],
        ))
        with patch("evaluation.chat_service.get_llm_service", return_value=service):
            reply = converse(_history("Hola"), "ctx")
        assert reply.recommendations_generated is False
        assert reply.text == "Necesito más información"

    def test_custom_system_prompt_is_used(self):
        SystemPrompt.objects.create(name="preanesthesia_chat", content="Prompt del hospital")
        service = _service_returning(LLMReply(text="ok"))
        with patch("evaluation.chat_service.get_llm_service", return_value=service):
            converse(_history("Hola"), "ctx")
        assert service.chat.call_args.kwargs["system_message"].startswith("Prompt del hospital")

    def test_provider_error_becomes_transient_io(self):
        service = MagicMock()
        service.provider_id = "openai"
        service.chat.side_effect = RuntimeError("rate limited")
        with patch("evaluation.chat_service.get_llm_service", return_value=service):
            with pytest.raises(TransientIO) as exc_info:
                converse(_history("Hola"), "ctx")
        assert exc_info.value.detail == {"provider": "openai"}

    def test_missing_api_key_becomes_transient_io(self):
        from evaluation.llm_providers import OpenAIService

        with patch("evaluation.chat_service.get_llm_service", return_value=OpenAIService(api_key="")):
            with pytest.raises(TransientIO):
                converse(_history("Hola"), "ctx")

    def test_empty_reply_becomes_transient_io(self):
        service = _service_returning(LLMReply(text="  "))
        with patch("evaluation.chat_service.get_llm_service", return_value=service):
            with pytest.raises(TransientIO):
                converse(_history("Hola"), "ctx")

    def test_passes_llm_provider_to_factory(self):
        with patch("evaluation.chat_service.get_llm_service", return_value=MockLLMService()) as mock_get:
            converse(_history("Hola"), "ctx", llm_provider="claude")
        mock_get.assert_called_once_with(provider="claude")


class TestSummarize:

    def test_summary_uses_conversation_and_recommendations(self):
        service = MagicMock()
        service.provider_id = "fake"
        service.generate.return_value = "  Resumen clínico  "
        recs = [SimpleNamespace(title="Ayuno", category="preoperatorio", description="8 horas")]
        history = [
            ConversationEntry(role="assistant", content="¿Alergias?"),
            ConversationEntry(role="patient", content="Penicilina"),
        ]
        with patch("evaluation.chat_service.get_llm_service", return_value=service):
            summary = summarize_conversation(history, "ctx", recs)

        assert summary == "Resumen clínico"
        user_message = service.generate.call_args.kwargs["user_message"]
        assert "IA Médica: ¿Alergias?" in user_message
        assert "Paciente: Penicilina" in user_message
        assert "1. Ayuno (preoperatorio) - 8 horas" in user_message
        assert service.generate.call_args.kwargs["system_message"] == chat_service.SUMMARY_SYSTEM_PROMPT

    def test_mock_summary(self):
        summary = summarize_conversation(_history("Hola"), "ctx")
        assert summary == MOCK_SUMMARY_TEXT
