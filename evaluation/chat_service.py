"""
AI 对话统一入口
业务代码只调用 converse / generate_conversation_summary，不关心具体 LLM 实现
"""
import logging
import time
from dataclasses import dataclass, field

from preop_eval.exceptions import TransientIO, ValidationError

from .llm_providers import get_llm_service
from .metrics import LLM_API_ERROR, LLM_API_LATENCY, LLM_PROVIDER_USAGE
from .models import MessageRole, SystemPrompt
from .types import RecommendationData

logger = logging.getLogger(__name__)

CHAT_PROMPT_NAME = "preanesthesia_chat"

WELCOME_MESSAGE = (
    "Hola, soy su asistente médico para la evaluación pre-anestésica. "
    "Le haré algunas preguntas sobre su salud para preparar su procedimiento. "
    "¿Cómo se encuentra hoy?"
)

RECOMMENDATIONS_READY_MESSAGE = (
    "He generado las recomendaciones médicas basadas en nuestra evaluación. "
    "Puede revisarlas en la siguiente sección. "
    "¿Tiene alguna pregunta adicional sobre el procedimiento o las recomendaciones?"
)

DEFAULT_CHAT_PROMPT = """Eres un asistente médico especializado en evaluaciones preanestésicas. Tu rol es:
1. Realizar preguntas relevantes sobre el historial médico del paciente
2. Evaluar factores de riesgo anestésico
3. Identificar contraindicaciones o precauciones
4. Generar recomendaciones basadas en las respuestas del paciente

Mantén un tono profesional pero empático. Basándote en la información del formulario, haz preguntas específicas y relevantes para completar la evaluación preanestésica. Si identificas factores de riesgo, profundiza en esos temas."""

TOOL_INSTRUCTION = (
    "IMPORTANTE: Al final de la conversación, si consideras que tienes suficiente información, "
    "puedes generar recomendaciones médicas específicas usando la función 'generate_recommendations'."
)

SUMMARY_SYSTEM_PROMPT = """Eres un asistente médico especializado en evaluaciones preanestésicas. Tu tarea es generar un resumen profesional y completo de la consulta médica virtual realizada entre el paciente y la IA médica.

El resumen debe:
- Ser claro, conciso y profesional
- Incluir los puntos más importantes de la conversación
- Destacar hallazgos relevantes para la anestesia
- Mencionar las recomendaciones principales
- Estar redactado en tercera persona
- Tener formato de informe médico
- No exceder los 500 palabras

Estructura del resumen:
1. Identificación del paciente y procedimiento
2. Evaluación preanestésica realizada
3. Hallazgos principales
4. Recomendaciones clave
5. Conclusión del estado del paciente"""

GENERATE_RECOMMENDATIONS_TOOL = {
    "name": "generate_recommendations",
    "description": "Genera recomendaciones médicas específicas basadas en la evaluación preanestésica del paciente",
    "parameters": {
        "type": "object",
        "properties": {
            "recommendations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string", "description": "Título de la recomendación"},
                        "description": {"type": "string", "description": "Descripción detallada de la recomendación"},
                        "category": {
                            "type": "string",
                            "enum": ["preoperatorio", "anestesia", "medicamentos", "riesgo", "seguimiento"],
                            "description": "Categoría de la recomendación",
                        },
                        "priority": {
                            "type": "string",
                            "enum": ["alta", "media", "baja"],
                            "description": "Prioridad de la recomendación",
                        },
                    },
                    "required": ["title", "description", "category", "priority"],
                },
            },
        },
        "required": ["recommendations"],
    },
}


@dataclass
class ChatReply:
    """一轮对话的结果；recommendations_generated 为 True 时 recommendations 非空"""
    text: str
    recommendations_generated: bool = False
    recommendations: list[RecommendationData] = field(default_factory=list)


def _yes_no(value) -> str:
    return "Sí" if value else "No"


def build_patient_context(patient, questionnaire=None) -> str:
    """患者信息 + 问卷 → 提示词中的上下文段落"""
    lines = [
        "Información del paciente:",
        f"- Nombre: {patient.name or 'No disponible'}",
        f"- Procedimiento: {patient.procedure or 'No especificado'}",
        f"- Fecha del procedimiento: {patient.procedure_date or 'No especificada'}",
        f"- DNI: {patient.dni or 'No disponible'}",
    ]
    if questionnaire:
        q = questionnaire
        allergies = (q.get("allergies") or "Sí, pero no especificadas") if q.get("has_allergies") else "No"
        lines += [
            "",
            "Información médica previa del formulario:",
            f"- Alergias: {allergies}",
            f"- Medicamentos actuales: {q.get('current_medications') or 'No especificados'}",
            f"- Historia médica: {q.get('medical_history') or 'No especificada'}",
            f"- Cirugías previas: {q.get('previous_surgeries') or 'No especificadas'}",
            f"- Historia familiar: {q.get('family_history') or 'No especificada'}",
            f"- Fumador: {_yes_no(q.get('smoking'))}",
            f"- Consumo de alcohol: {_yes_no(q.get('alcohol'))}",
            f"- Ejercicio: {q.get('exercise') or 'No especificado'}",
            f"- Dieta: {q.get('diet') or 'No especificada'}",
            f"- Horas de sueño: {q.get('sleep_hours') if q.get('sleep_hours') is not None else 'No especificado'}",
            f"- Nivel de estrés (1-10): {q.get('stress_level') if q.get('stress_level') is not None else 'No especificado'}",
            f"- Preocupaciones adicionales: {q.get('additional_concerns') or 'Ninguna'}",
            f"- Contacto de emergencia: {q.get('emergency_contact_name') or 'No especificado'}",
        ]
    return "\n".join(lines)


def _chat_system_prompt(patient_context: str) -> str:
    custom = SystemPrompt.objects.filter(name=CHAT_PROMPT_NAME).values_list("content", flat=True).first()
    base = custom or DEFAULT_CHAT_PROMPT
    return f"{base}\n\n{patient_context}\n\n{TOOL_INSTRUCTION}"


def _to_llm_messages(history) -> list[dict]:
    # patient → user；其余按 assistant 处理
    return [
        {
            "role": "user" if entry.role == MessageRole.PATIENT else "assistant",
            "content": entry.content,
        }
        for entry in history
    ]


def _parse_recommendations(arguments) -> list[RecommendationData]:
    records = []
    for item in arguments.get("recommendations") or []:
        try:
            records.append(RecommendationData.from_payload(item))
        except ValidationError as exc:
            logger.warning("Discarding malformed AI recommendation: %s", exc.detail)
    return records


def _call(service, method, **kwargs):
    """调用 LLM 并记录指标；任何失败转为 TransientIO"""
    provider_id = getattr(service, "provider_id", "unknown")
    start = time.perf_counter()
    try:
        result = getattr(service, method)(**kwargs)
    except Exception as exc:
        LLM_API_ERROR.inc()
        logger.error("LLM provider %s failed on %s: %s", provider_id, method, exc)
        raise TransientIO(
            message="El asistente no está disponible en este momento, intente nuevamente",
            detail={"provider": provider_id},
        ) from exc
    LLM_API_LATENCY.observe(time.perf_counter() - start)
    LLM_PROVIDER_USAGE.labels(provider=provider_id).inc()
    return result


def converse(history, patient_context: str, *, llm_provider: str | None = None) -> ChatReply:
    """
    统一入口：把完整对话（含本轮患者发言）交给 LLM
    LLM 调用 generate_recommendations 时返回结构化建议和固定提示语
    llm_provider: 可选，不传则用 settings.LLM_PROVIDER
    """
    service = get_llm_service(provider=llm_provider)
    reply = _call(
        service,
        "chat",
        system_message=_chat_system_prompt(patient_context),
        messages=_to_llm_messages(history),
        tools=[GENERATE_RECOMMENDATIONS_TOOL],
        temperature=0.7,
        max_tokens=1000,
    )

    call = reply.find_tool_call(GENERATE_RECOMMENDATIONS_TOOL["name"])
    if call is not None:
        recommendations = _parse_recommendations(call.arguments)
        if recommendations:
            return ChatReply(
                text=RECOMMENDATIONS_READY_MESSAGE,
                recommendations_generated=True,
                recommendations=recommendations,
            )
        logger.warning("AI requested recommendations but none were usable")

    text = (reply.text or "").strip()
    if not text:
        raise TransientIO(
            message="El asistente no generó una respuesta, intente nuevamente",
            detail={"provider": getattr(service, "provider_id", "unknown")},
        )
    return ChatReply(text=text)


def summarize_conversation(history, patient_context: str, recommendations=(), *, llm_provider: str | None = None) -> str:
    """对话 + 建议 → 员工报告用的医学摘要"""
    conversation_text = "\n\n".join(
        f"{'Paciente' if entry.role == MessageRole.PATIENT else 'IA Médica'}: {entry.content}"
        for entry in history
    )
    context = patient_context
    if recommendations:
        context += "\n\nRecomendaciones generadas:"
        for index, rec in enumerate(recommendations, start=1):
            context += f"\n{index}. {rec.title} ({rec.category}) - {rec.description}"

    user_prompt = f"""Por favor genera un resumen médico completo basado en la siguiente información:

{context}

CONVERSACIÓN COMPLETA:
{conversation_text}

Genera un resumen profesional que capture la esencia de la evaluación preanestésica y la situación completa del paciente."""

    service = get_llm_service(provider=llm_provider)
    summary = _call(
        service,
        "generate",
        system_message=SUMMARY_SYSTEM_PROMPT,
        user_message=user_prompt,
        temperature=0.3,
        max_tokens=1000,
    )
    if not summary or not summary.strip():
        raise TransientIO(message="No se pudo generar el resumen", detail={"operation": "summary"})
    return summary.strip()
