"""
流程步骤与状态的封闭枚举
步骤顺序固定：data_consent → chat → recommendations → consent → completed
粗粒度状态（Pendientes / En progreso / Completado / Validado）由步骤记录推导，不单独维护
"""
from django.db import models


class Step(models.TextChoices):
    DATA_CONSENT = "data_consent", "Consentimiento de Datos"
    CHAT = "chat", "Consulta con IA"
    RECOMMENDATIONS = "recommendations", "Recomendaciones"
    CONSENT = "consent", "Consentimiento Informado"
    COMPLETED = "completed", "Completado"


class PatientStatus(models.TextChoices):
    PENDING = "Pendientes", "Pendientes"
    IN_PROGRESS = "En progreso", "En progreso"
    COMPLETED = "Completado", "Completado"
    VALIDATED = "Validado", "Validado"


STEP_ORDER = [
    Step.DATA_CONSENT,
    Step.CHAT,
    Step.RECOMMENDATIONS,
    Step.CONSENT,
    Step.COMPLETED,
]

# 进入某一步骤前必须完成的内容，拒绝时给患者的说明
STEP_BLOCKED_REASONS = {
    Step.DATA_CONSENT: "Debe aceptar el tratamiento de datos para continuar",
    Step.CHAT: "Debe aceptar el tratamiento de datos antes de la consulta con IA",
    Step.RECOMMENDATIONS: "La evaluación con IA aún no se ha completado",
    Step.CONSENT: "Debe revisar las recomendaciones antes de firmar el consentimiento",
    Step.COMPLETED: "Debe firmar el consentimiento informado para finalizar",
}

FROZEN_REASON = "La evaluación ya fue completada y no puede modificarse"


def parse_step(value) -> Step:
    """字符串 → Step，非法值抛 ValueError"""
    if isinstance(value, Step):
        return value
    try:
        return Step(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown step: {value}. Known: {[s.value for s in STEP_ORDER]}")


def step_index(step) -> int:
    return STEP_ORDER.index(parse_step(step))


def predecessor(step):
    """前置步骤；data_consent 是入口，没有前置"""
    idx = step_index(step)
    return STEP_ORDER[idx - 1] if idx > 0 else None


def next_step(step):
    idx = step_index(step)
    return STEP_ORDER[idx + 1] if idx + 1 < len(STEP_ORDER) else None


def derive_status(completed_steps, validated=False) -> PatientStatus:
    """
    由已完成步骤推导粗粒度状态
    validated 只在流程完成后才生效
    """
    completed = {parse_step(s) for s in completed_steps}
    if Step.COMPLETED in completed:
        return PatientStatus.VALIDATED if validated else PatientStatus.COMPLETED
    if completed:
        return PatientStatus.IN_PROGRESS
    return PatientStatus.PENDING


def first_missing_step(completed_steps) -> Step:
    """按固定顺序第一个未完成的步骤；前四步都完成则为 completed"""
    done = {parse_step(s) for s in completed_steps}
    for step in STEP_ORDER:
        if step not in done:
            return step
    return Step.COMPLETED
