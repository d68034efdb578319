"""
业务逻辑：员工端操作（名单导入、查询导出、状态、校验、报告、提示词）
以及患者身份验证和 process-step 接口
员工端操作不经过步骤校验
"""
import csv
import logging
import re

from django.db import transaction
from django.db.models import Q
from django.http import HttpResponse
from django.utils import timezone

from preop_eval.exceptions import BlockError, PatientNotFound, ValidationError

from . import chat_service, ledger, validator
from .duplication_detection import check_patient, check_roster
from .intake import get_adapter
from .metrics import EVALUATION_VALIDATED, PATIENTS_IMPORTED
from .models import ConversationSummary, Patient, SystemPrompt
from .steps import PatientStatus, Step, derive_status, first_missing_step
from .store import PatientStore
from .tasks import send_patient_link_task, send_validation_sms_task
from .workflow import WorkflowDriver

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 100

# 本地号码位数；国家码前缀不参与比较
PHONE_MATCH_DIGITS = 9


def _queue_sms(task, patient_id):
    """短信入队：发后即忘，失败只记录"""
    try:
        task.delay(patient_id)
    except Exception:
        logger.exception("Could not queue %s for patient %s", task.name, patient_id)


def _phone_digits(phone) -> str:
    return re.sub(r"\D", "", phone or "")


def _patient_summary(patient, current_step=None) -> dict:
    data = {
        "token": patient.token,
        "dni": patient.dni,
        "name": patient.name,
        "email": patient.email,
        "phone": patient.phone,
        "birth_date": patient.birth_date.isoformat() if patient.birth_date else None,
        "procedure": patient.procedure,
        "procedure_date": patient.procedure_date.isoformat() if patient.procedure_date else None,
        "appointment_at": patient.appointment_at.isoformat() if patient.appointment_at else None,
        "status": patient.status,
        "created_at": patient.created_at.isoformat(),
    }
    if current_step is not None:
        data["current_step"] = current_step.value
    return data


# ---------- 患者身份验证 ----------

def verify_identity(dni, phone=None):
    """
    DNI → 患者访问 token
    phone 给定时需与登记号码一致：只比较数字，至少 9 位，后 9 位相同（忽略国家码前缀）
    """
    patient = Patient.objects.filter(dni=dni).first()
    if patient is None:
        raise PatientNotFound(
            message="No se encontró un paciente con este DNI",
            detail={"dni": dni},
        )
    if phone:
        given, stored = _phone_digits(phone), _phone_digits(patient.phone)
        if len(given) < PHONE_MATCH_DIGITS or given[-PHONE_MATCH_DIGITS:] != stored[-PHONE_MATCH_DIGITS:]:
            raise BlockError(
                message="El teléfono no coincide con el registrado",
                code="PHONE_MISMATCH",
                http_status=403,
            )
    logger.info("Patient %s verified identity", patient.pk)
    return {
        "success": True,
        "data": {
            "token": patient.token,
            "name": patient.name,
            "current_step": ledger.get_current_step(patient.token).value,
        },
    }


# ---------- 名单导入 ----------

def import_roster(raw, source, *, confirm=None, send_links=None):
    """
    名单 → 患者记录，投递访问链接短信
    先对整批做重复检测，全部通过后再在一个事务里创建
    """
    try:
        adapter = get_adapter(source)
    except ValueError as exc:
        raise ValidationError(message="Formato de archivo no soportado", code="UNKNOWN_SOURCE", detail={"error": str(exc)})

    roster = adapter.process(raw, source)
    if confirm is not None:
        roster.confirm = confirm
    if send_links is not None:
        roster.send_links = send_links

    check_roster(roster.patients)
    matches = [(info, check_patient(info, confirm=roster.confirm)) for info in roster.patients]

    created, existing = [], []
    with transaction.atomic():
        for info, patient in matches:
            if patient is None:
                created.append(Patient.objects.create(**info.to_model_fields()))
            else:
                existing.append(patient)

    PATIENTS_IMPORTED.labels(source=roster.source).inc(len(created))
    logger.info("Roster import (%s): %s created, %s existing", roster.source, len(created), len(existing))

    if roster.send_links:
        for patient in created:
            _queue_sms(send_patient_link_task, patient.id)

    return {
        "success": True,
        "data": {
            "created": [_patient_summary(p) for p in created],
            "existing": [_patient_summary(p) for p in existing],
        },
    }


# ---------- 查询 / 导出 ----------

def search_patients(status=None, q="", start=None, end=None, export=False):
    """
    按状态 / 文本 / 手术日期范围查询
    export=False: 返回 dict
    export=True: 返回 HttpResponse (CSV)
    """
    queryset = Patient.objects.prefetch_related('step_completions').order_by('-created_at')
    if status:
        queryset = queryset.filter(status=status)
    if q:
        queryset = queryset.filter(
            Q(name__icontains=q)
            | Q(dni__icontains=q)
            | Q(email__icontains=q)
            | Q(procedure__icontains=q)
        )
    if start:
        queryset = queryset.filter(procedure_date__gte=start)
    if end:
        queryset = queryset.filter(procedure_date__lte=end)

    def current(patient):
        return first_missing_step(c.step for c in patient.step_completions.all())

    if export:
        response = HttpResponse(content_type='text/csv; charset=utf-8')
        response['Content-Disposition'] = 'attachment; filename="pacientes.csv"'
        writer = csv.writer(response)
        writer.writerow([
            'dni', 'nombre', 'email', 'telefono', 'fecha_nacimiento',
            'procedimiento', 'fecha_procedimiento', 'cita', 'estado', 'paso_actual',
            'validado_por', 'creado',
        ])
        for p in queryset:
            writer.writerow([
                p.dni, p.name, p.email, p.phone,
                p.birth_date.isoformat() if p.birth_date else '',
                p.procedure,
                p.procedure_date.isoformat() if p.procedure_date else '',
                timezone.localtime(p.appointment_at).strftime('%Y-%m-%d %H:%M') if p.appointment_at else '',
                p.status, current(p).value, p.validated_by, p.created_at.isoformat(),
            ])
        return response

    items = [_patient_summary(p, current(p)) for p in queryset[:SEARCH_LIMIT]]
    return {"success": True, "data": {"results": items, "count": queryset.count()}}


# ---------- 状态 / 校验 ----------

def set_patient_status(token, status, staff=""):
    """
    状态由步骤记录推导，员工只能在评估完成后切换 Completado ↔ Validado
    其他与步骤记录不一致的设置 → STATUS_INCONSISTENT
    """
    patient = PatientStore().get(token)
    frozen = ledger.is_frozen(token)
    projected = derive_status(ledger.completed_steps(token), validated=patient.validated_at is not None)
    if status == projected:
        return {"success": True, "data": {"status": projected}}

    if frozen and status == PatientStatus.VALIDATED:
        patient.validated_at = timezone.now()
        patient.validated_by = staff
    elif frozen and status == PatientStatus.COMPLETED:
        patient.validated_at = None
        patient.validated_by = ""
    else:
        raise BlockError(
            message="El estado no coincide con el progreso del paciente",
            code="STATUS_INCONSISTENT",
            detail={"requested": status, "current": projected},
        )
    patient.save(update_fields=["validated_at", "validated_by", "updated_at"])
    new_status = ledger.recompute_status(patient)
    logger.info("Patient %s status set to %s by %s", patient.pk, new_status, staff or "staff")
    return {"success": True, "data": {"status": new_status}}


def validate_evaluation(token, validated_by="", recommendations=None):
    """
    员工校验：可同时整体替换建议；标记 Validado 并发送通知短信
    只有已完成的评估可以校验
    """
    store = PatientStore()
    patient = store.get(token)
    if not ledger.is_frozen(token):
        raise BlockError(
            message="La evaluación aún no ha sido completada por el paciente",
            code="EVALUATION_NOT_COMPLETED",
            detail={"current_step": ledger.get_current_step(token).value},
        )
    with transaction.atomic():
        if recommendations is not None:
            store.replace_recommendations(token, recommendations)
        patient.validated_at = timezone.now()
        patient.validated_by = validated_by
        patient.save(update_fields=["validated_at", "validated_by", "updated_at"])
        status = ledger.recompute_status(patient)

    EVALUATION_VALIDATED.inc()
    logger.info("Patient %s evaluation validated by %s", patient.pk, validated_by or "staff")
    _queue_sms(send_validation_sms_task, patient.id)
    return {
        "success": True,
        "data": {
            "status": status,
            "validated_at": patient.validated_at.isoformat(),
            "validated_by": patient.validated_by,
        },
    }


def replace_recommendations(token, recommendations):
    records = PatientStore().replace_recommendations(token, recommendations)
    return {"success": True, "data": {"recommendations": [r.to_dict() for r in records]}}


# ---------- 报告 ----------

def generate_conversation_summary(token):
    """对话 + 问卷 + 建议 → AI 摘要，保存并返回"""
    store = PatientStore()
    patient = store.get(token)
    history = store.list_conversation(token)
    if not any(entry.role == "patient" for entry in history):
        raise BlockError(
            message="El paciente aún no ha conversado con la IA",
            code="NO_CONVERSATION",
        )
    context = chat_service.build_patient_context(patient, store.get_questionnaire(token))
    summary = chat_service.summarize_conversation(history, context, store.list_recommendations(token))
    ConversationSummary.objects.update_or_create(patient=patient, defaults={"summary": summary})
    return summary


def patient_report(token, regenerate_summary=False):
    """员工查看的完整报告"""
    store = PatientStore()
    patient = store.get(token)
    if regenerate_summary:
        summary = generate_conversation_summary(token)
    else:
        summary = ConversationSummary.objects.filter(patient=patient).values_list("summary", flat=True).first()

    completions = {
        c.step: c.completed_at.isoformat()
        for c in patient.step_completions.all()
    }
    return {
        "success": True,
        "data": {
            "patient": _patient_summary(patient, ledger.get_current_step(token)),
            "steps": [{"step": s.value, "completed_at": completions.get(s.value)} for s in Step],
            "validated_at": patient.validated_at.isoformat() if patient.validated_at else None,
            "validated_by": patient.validated_by,
            "questionnaire": store.get_questionnaire(token),
            "conversation": [e.to_dict() for e in store.list_conversation(token)],
            "recommendations": [r.to_dict() for r in store.list_recommendations(token)],
            "consents": [c.to_dict() for c in store.get_consents(token)],
            "summary": summary,
        },
    }


# ---------- 系统提示词 ----------

def list_system_prompts():
    prompts = SystemPrompt.objects.order_by("name")
    return {
        "success": True,
        "data": {
            "results": [
                {"name": p.name, "content": p.content, "updated_at": p.updated_at.isoformat()}
                for p in prompts
            ],
        },
    }


def upsert_system_prompt(name, content):
    prompt, created = SystemPrompt.objects.update_or_create(name=name, defaults={"content": content})
    logger.info("System prompt %s %s", name, "created" if created else "updated")
    return {"success": True, "data": {"name": prompt.name, "content": prompt.content, "created": created}}


# ---------- process-step 接口 ----------

def process_step(token, action, target_step=None):
    """
    validate: 只做判断，不修改
    complete: 经 WorkflowDriver 推进（该步骤的领域动作必须已完成）
    get_current_step: 当前步骤
    """
    if action == "validate":
        return {"success": True, "validation": validator.validate(token, target_step).to_dict()}
    if action == "complete":
        state = WorkflowDriver(token).complete_step(target_step)
        return {"success": True, "completed": True, "state": state}
    return {"success": True, "current_step": ledger.get_current_step(token).value}
