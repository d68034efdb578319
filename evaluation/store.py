"""
患者数据存储：以 token 为键的读写接口
所有患者端读写都经过这里；未知 token 一律抛 PatientNotFound
数据库异常统一转为 TransientIO（可重试），不吞掉
"""
import functools
import logging

from django.db import DatabaseError, transaction
from django.db.models import Case, IntegerField, Value, When
from django.utils import timezone

from preop_eval.exceptions import BlockError, PatientNotFound, StaleWrite, TransientIO, ValidationError

from .models import (
    ConsentRecord,
    ConsentType,
    ConversationMessage,
    Patient,
    Priority,
    QuestionnaireResponse,
    Recommendation,
)
from .types import ConsentData, ConversationEntry, RecommendationData

logger = logging.getLogger(__name__)

# 患者端 / 员工端允许通过 update 修改的字段；status / token / 步骤记录不在其中
UPDATABLE_FIELDS = {
    "name",
    "email",
    "phone",
    "birth_date",
    "procedure",
    "procedure_date",
}

QUESTIONNAIRE_FIELDS = [
    "emergency_contact_name",
    "emergency_contact_phone",
    "emergency_contact_relationship",
    "has_allergies",
    "allergies",
    "current_medications",
    "medical_history",
    "previous_surgeries",
    "family_history",
    "smoking",
    "alcohol",
    "exercise",
    "diet",
    "sleep_hours",
    "stress_level",
    "additional_concerns",
]


def translate_db_errors(func):
    """数据库错误 → TransientIO"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DatabaseError as exc:
            logger.error("Store operation %s failed: %s", func.__name__, exc)
            raise TransientIO(detail={"operation": func.__name__}) from exc
    return wrapper


def _to_recommendation_records(items) -> list[RecommendationData]:
    """dict 或 RecommendationData → RecommendationData；空列表抛 EMPTY_RECOMMENDATIONS"""
    records = [
        item if isinstance(item, RecommendationData) else RecommendationData.from_payload(item)
        for item in items
    ]
    if not records:
        raise ValidationError(
            message="Debe incluir al menos una recomendación",
            code="EMPTY_RECOMMENDATIONS",
        )
    return records

class PatientStore:
    """患者记录的读写面：对话、建议、同意书、问卷"""

    @translate_db_errors
    def get(self, token) -> Patient:
        if not token or not isinstance(token, str):
            raise PatientNotFound()
        try:
            return Patient.objects.get(token=token)
        except Patient.DoesNotExist:
            raise PatientNotFound(detail={"token": token[:8] + "…"})

    @translate_db_errors
    def update(self, token, fields: dict) -> Patient:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                message="Campos no modificables",
                code="FIELD_NOT_UPDATABLE",
                detail={"fields": sorted(unknown)},
            )
        patient = self.get(token)
        for name, value in fields.items():
            setattr(patient, name, value)
        patient.save(update_fields=[*fields.keys(), "updated_at"])
        return patient

    @translate_db_errors
    def set_appointment(self, token, appointment_at) -> Patient:
        """预约时间由流程完成时写入，不经过 update"""
        patient = self.get(token)
        patient.appointment_at = appointment_at
        patient.save(update_fields=["appointment_at", "updated_at"])
        return patient

    # ---------- 对话 ----------

    @translate_db_errors
    def append_conversation_message(self, token, role, content) -> ConversationEntry:
        entry = ConversationEntry(role=role, content=(content or "").strip())
        patient = self.get(token)
        msg = ConversationMessage.objects.create(patient=patient, role=entry.role, content=entry.content)
        return ConversationEntry(role=msg.role, content=msg.content, created_at=msg.created_at)

    @translate_db_errors
    def list_conversation(self, token) -> list[ConversationEntry]:
        patient = self.get(token)
        return [
            ConversationEntry(role=m.role, content=m.content, created_at=m.created_at)
            for m in patient.messages.order_by("created_at", "id")
        ]

    # ---------- 建议 ----------

    @translate_db_errors
    def list_recommendations(self, token) -> list[RecommendationData]:
        """按优先级（high → low）再按时间（新 → 旧）排序"""
        patient = self.get(token)
        queryset = (
            patient.recommendations
            .annotate(
                priority_rank=Case(
                    When(priority=Priority.HIGH, then=Value(0)),
                    When(priority=Priority.MEDIUM, then=Value(1)),
                    default=Value(2),
                    output_field=IntegerField(),
                )
            )
            .order_by("priority_rank", "-created_at", "-id")
        )
        return [RecommendationData.from_model(rec) for rec in queryset]

    @translate_db_errors
    def has_recommendations(self, token) -> bool:
        return self.get(token).recommendations.exists()

    @translate_db_errors
    def insert_recommendations(self, token, items) -> list[RecommendationData]:
        records = _to_recommendation_records(items)
        patient = self.get(token)
        with transaction.atomic():
            created = [
                Recommendation.objects.create(
                    patient=patient,
                    category=rec.category,
                    title=rec.title,
                    description=rec.description,
                    priority=rec.priority,
                )
                for rec in records
            ]
        return [RecommendationData.from_model(rec) for rec in created]

    @translate_db_errors
    def replace_recommendations(self, token, items) -> list[RecommendationData]:
        """员工编辑 / 校验时整体替换；不允许替换为空"""
        records = _to_recommendation_records(items)
        patient = self.get(token)
        with transaction.atomic():
            patient.recommendations.all().delete()
            created = [
                Recommendation.objects.create(
                    patient=patient,
                    category=rec.category,
                    title=rec.title,
                    description=rec.description,
                    priority=rec.priority,
                )
                for rec in records
            ]
        return [RecommendationData.from_model(rec) for rec in created]

    # ---------- 同意书 ----------

    @translate_db_errors
    def get_consents(self, token) -> list[ConsentData]:
        patient = self.get(token)
        return [ConsentData.from_model(c) for c in patient.consents.order_by("created_at")]

    @translate_db_errors
    def upsert_consent(
        self,
        token,
        consent_type,
        accepted,
        signature,
        *,
        content="",
        expected_version=None,
    ) -> ConsentData:
        """
        每种同意书一份有效记录；接受是单向的，已接受后不能撤回
        pre_anesthetic 接受时必须有签名
        expected_version 给定时做 compare-and-swap
        """
        if consent_type not in ConsentType.values:
            raise ValidationError(
                message="Tipo de consentimiento inválido",
                code="INVALID_CONSENT_TYPE",
                detail={"consent_type": consent_type},
            )
        signature = (signature or "").strip()
        if accepted and consent_type == ConsentType.PRE_ANESTHETIC and not signature:
            raise ValidationError(
                message="Por favor proporcione su firma digital",
                code="SIGNATURE_REQUIRED",
            )

        patient = self.get(token)
        with transaction.atomic():
            consent, _ = (
                ConsentRecord.objects
                .select_for_update()
                .get_or_create(patient=patient, consent_type=consent_type)
            )
            if expected_version is not None and consent.version != expected_version:
                raise StaleWrite(detail={"expected": expected_version, "actual": consent.version})
            if consent.accepted and not accepted:
                raise BlockError(
                    message="El consentimiento ya fue aceptado y no puede revocarse",
                    code="CONSENT_ALREADY_ACCEPTED",
                )
            if accepted and not consent.accepted:
                consent.accepted = True
                consent.accepted_at = timezone.now()
            if signature:
                consent.signature_data = signature
            if content:
                consent.content = content
            consent.version += 1
            consent.save()
        return ConsentData.from_model(consent)

    # ---------- 问卷 ----------

    @translate_db_errors
    def get_questionnaire(self, token) -> dict | None:
        patient = self.get(token)
        response = QuestionnaireResponse.objects.filter(patient=patient).first()
        if response is None:
            return None
        return {name: getattr(response, name) for name in QUESTIONNAIRE_FIELDS}

    @translate_db_errors
    def save_questionnaire(self, token, data: dict) -> dict:
        patient = self.get(token)
        values = {name: data[name] for name in QUESTIONNAIRE_FIELDS if name in data}
        response, _ = QuestionnaireResponse.objects.update_or_create(patient=patient, defaults=values)
        return {name: getattr(response, name) for name in QUESTIONNAIRE_FIELDS}
