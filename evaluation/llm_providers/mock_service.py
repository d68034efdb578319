"""
Mock 实现：不调用任何外部 API，用于本地开发和测试
患者发言达到 MOCK_RECOMMENDATION_TURNS 轮后，通过工具调用返回固定建议
"""
from django.conf import settings

from .base import BaseLLMService, LLMReply, ToolCall

MOCK_SUMMARY_TEXT = (
    "[Mock] Resumen de la consulta pre-anestésica: paciente sin hallazgos relevantes "
    "para la anestesia. Se recomienda seguir las indicaciones pre-operatorias habituales."
)

MOCK_QUESTIONS = [
    "[Mock] ¿Ha tenido alguna reacción a la anestesia en cirugías anteriores?",
    "[Mock] ¿Toma anticoagulantes o antiinflamatorios actualmente?",
    "[Mock] ¿Tiene dificultad para respirar al subir escaleras o al dormir?",
    "[Mock] ¿Hay algo más que quiera comentar sobre su salud?",
]

MOCK_RECOMMENDATIONS = [
    {
        "title": "Ayuno pre-operatorio",
        "description": "Mantenga ayuno completo 8 horas antes de la cirugía (sin alimentos ni líquidos).",
        "category": "preoperatorio",
        "priority": "alta",
    },
    {
        "title": "Revisión de medicamentos",
        "description": "Suspenda medicamentos antiinflamatorios 7 días antes de la cirugía según indicación médica.",
        "category": "medicamentos",
        "priority": "media",
    },
    {
        "title": "Preparación general",
        "description": "Siga todas las instrucciones pre-operatorias proporcionadas por su equipo médico.",
        "category": "seguimiento",
        "priority": "baja",
    },
]


class MockLLMService(BaseLLMService):
    """固定返回，便于离线开发"""

    provider_id = "mock"

    def generate(self, system_message, user_message, *, temperature=0.7, max_tokens=2000) -> str:
        return MOCK_SUMMARY_TEXT

    def chat(self, system_message, messages, *, tools=None, temperature=0.7, max_tokens=1000) -> LLMReply:
        turns = sum(1 for msg in messages if msg["role"] == "user")
        threshold = getattr(settings, "MOCK_RECOMMENDATION_TURNS", 3)
        tool_names = {tool["name"] for tool in tools or []}
        if turns >= threshold and "generate_recommendations" in tool_names:
            return LLMReply(
                tool_calls=[
                    ToolCall(
                        name="generate_recommendations",
                        arguments={"recommendations": [dict(rec) for rec in MOCK_RECOMMENDATIONS]},
                    )
                ]
            )
        return LLMReply(text=MOCK_QUESTIONS[min(max(turns - 1, 0), len(MOCK_QUESTIONS) - 1)])
