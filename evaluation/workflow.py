"""
患者流程驱动（Workflow Driver）
显式状态机：data_consent → chat → recommendations → consent → completed
每个步骤一个转移函数，都经过 _advance：
  1. 当前步骤必须是该动作所属步骤
  2. 执行领域动作（失败直接抛出，步骤不标记）
  3. 校验当前步骤（含建议内容门槛）
  4. mark_completed(当前步骤)，下一步骤随之解锁
completed 为终态，之后任何转移都抛 InvalidTransition
"""
import logging
from datetime import datetime, time, timedelta

from django.conf import settings
from django.utils import timezone

from preop_eval.exceptions import ContentNotReady, InvalidTransition, ValidationError

from . import chat_service, ledger, validator
from .metrics import CHAT_TURNS, RECOMMENDATIONS_GENERATED
from .models import ConsentType, MessageRole
from .steps import FROZEN_REASON, STEP_BLOCKED_REASONS, Step, parse_step, step_index
from .store import PatientStore
from .tasks import send_appointment_sms_task

logger = logging.getLogger(__name__)

DATA_CONSENT_TEXT = (
    "Autorizo el tratamiento de mis datos personales y de salud con la finalidad de "
    "realizar la evaluación pre-anestésica, conforme a la normativa de protección de datos."
)

INFORMED_CONSENT_TEXT = (
    "Declaro haber sido informado/a sobre el procedimiento anestésico, sus riesgos y "
    "alternativas, y haber podido realizar todas las preguntas que consideré necesarias. "
    "Acepto voluntariamente la anestesia propuesta para mi procedimiento."
)

ALREADY_DONE_REASON = "Este paso ya fue completado"


class WorkflowDriver:
    """
    患者端唯一的流程入口；员工端操作不经过这里
    store / chat 可注入，便于测试
    """

    def __init__(self, token, *, store=None, chat=None):
        self.token = token
        self.store = store or PatientStore()
        self.chat = chat or chat_service
        # 无效 token 立即失败，不会默认到第一步
        self.store.get(token)

    # ---------- 查询 ----------

    def state(self) -> dict:
        patient = self.store.get(self.token)
        return {
            "patient": {
                "name": patient.name,
                "dni": patient.dni,
                "procedure": patient.procedure,
                "procedure_date": patient.procedure_date.isoformat() if patient.procedure_date else None,
                "appointment_at": patient.appointment_at.isoformat() if patient.appointment_at else None,
            },
            "current_step": ledger.get_current_step(self.token).value,
            "completed_steps": [step.value for step in ledger.completed_steps(self.token)],
            "frozen": ledger.is_frozen(self.token),
            "status": patient.status,
            "ledger_version": patient.ledger_version,
        }

    def conversation(self) -> list[dict]:
        """对话记录；进入 chat 步骤且尚无记录时写入欢迎语"""
        entries = self.store.list_conversation(self.token)
        if not entries and ledger.get_current_step(self.token) == Step.CHAT:
            entries = [
                self.store.append_conversation_message(
                    self.token, MessageRole.ASSISTANT, chat_service.WELCOME_MESSAGE
                )
            ]
        return [entry.to_dict() for entry in entries]

    def recommendations(self) -> list[dict]:
        check = validator.validate(self.token, Step.RECOMMENDATIONS, store=self.store)
        self._raise_if_denied(check)
        return [rec.to_dict() for rec in self.store.list_recommendations(self.token)]

    def save_questionnaire(self, data: dict) -> dict:
        """流程冻结前可随时修改"""
        if ledger.is_frozen(self.token):
            raise InvalidTransition(message=FROZEN_REASON, detail={"current_step": Step.COMPLETED.value})
        return self.store.save_questionnaire(self.token, data)

    # ---------- 转移 ----------

    def accept_data_consent(self, accepted) -> dict:
        if not accepted:
            raise ValidationError(
                message=STEP_BLOCKED_REASONS[Step.DATA_CONSENT],
                code="DATA_CONSENT_REQUIRED",
            )
        self._advance(
            Step.DATA_CONSENT,
            lambda: self.store.upsert_consent(
                self.token, ConsentType.DATA_PROCESSING, True, "", content=DATA_CONSENT_TEXT
            ),
        )
        return self.state()

    def send_chat_message(self, text) -> dict:
        """
        患者发言 → AI 回复；AI 生成建议时一并保存
        不推进步骤，结束对话由 finish_chat 完成
        """
        self._require_step(Step.CHAT)
        self.store.append_conversation_message(self.token, MessageRole.PATIENT, text)
        history = self.store.list_conversation(self.token)
        reply = self.chat.converse(history, self._patient_context())
        assistant = self.store.append_conversation_message(self.token, MessageRole.ASSISTANT, reply.text)
        CHAT_TURNS.inc()

        saved = []
        if reply.recommendations_generated:
            saved = self.store.insert_recommendations(self.token, reply.recommendations)
            RECOMMENDATIONS_GENERATED.inc()
            logger.info("Stored %s AI recommendations for patient token %s…", len(saved), self.token[:8])
        return {
            "message": assistant.to_dict(),
            "recommendations_generated": reply.recommendations_generated,
            "recommendations": [rec.to_dict() for rec in saved],
        }

    def finish_chat(self) -> dict:
        self._advance(Step.CHAT, self._ensure_recommendations)
        return self.state()

    def acknowledge_recommendations(self) -> dict:
        self._advance(Step.RECOMMENDATIONS)
        return self.state()

    def sign_informed_consent(self, accepted, signature, *, expected_version=None) -> dict:
        if not accepted:
            raise ValidationError(
                message="Debe aceptar el consentimiento informado para continuar",
                code="CONSENT_REQUIRED",
            )
        self._advance(
            Step.CONSENT,
            lambda: self.store.upsert_consent(
                self.token,
                ConsentType.PRE_ANESTHETIC,
                True,
                signature,
                content=INFORMED_CONSENT_TEXT,
                expected_version=expected_version,
            ),
        )
        return self.finalize()

    def finalize(self) -> dict:
        """标记 completed 并预约；签署后若这一步失败，可单独重试"""
        self._advance(Step.COMPLETED)
        self._schedule_appointment()
        return self.state()

    def complete_step(self, step) -> dict:
        """
        按步骤名推进（process-step 接口的 complete 动作）
        只在该步骤的领域动作已经完成时生效
        """
        step = parse_step(step)
        preconditions = {
            Step.DATA_CONSENT: lambda: self._ensure_consent(ConsentType.DATA_PROCESSING, Step.DATA_CONSENT),
            Step.CHAT: self._ensure_recommendations,
            Step.RECOMMENDATIONS: None,
            Step.CONSENT: lambda: self._ensure_consent(ConsentType.PRE_ANESTHETIC, Step.CONSENT),
        }
        if step == Step.COMPLETED:
            return self.finalize()
        self._advance(step, preconditions[step])
        return self.state()

    # ---------- 内部 ----------

    def _advance(self, step, action=None):
        """唯一的失败边界：任何一步抛错都不会写步骤记录"""
        self._require_step(step)
        result = action() if action is not None else None

        check = validator.validate(self.token, step, store=self.store)
        self._raise_if_denied(check)

        if not ledger.mark_completed(self.token, step):
            # 并发请求已经推进了流程
            raise InvalidTransition(
                message=ALREADY_DONE_REASON,
                detail={"step": step.value, "current_step": ledger.get_current_step(self.token).value},
            )
        return result

    def _require_step(self, step):
        if ledger.is_frozen(self.token):
            raise InvalidTransition(
                message=FROZEN_REASON,
                detail={"current_step": Step.COMPLETED.value, "target_step": step.value},
            )
        current = ledger.get_current_step(self.token)
        if current == step:
            return current
        reason = STEP_BLOCKED_REASONS[step] if step_index(step) > step_index(current) else ALREADY_DONE_REASON
        raise InvalidTransition(
            message=reason,
            detail={"current_step": current.value, "target_step": step.value},
        )

    def _raise_if_denied(self, check):
        if check.allowed:
            return
        logger.info(
            "Denied %s for patient token %s…: %s", check.target_step, self.token[:8], check.code
        )
        exc_class = ContentNotReady if check.code == ContentNotReady.code else InvalidTransition
        raise exc_class(message=check.reason, detail=check.to_dict())

    def _ensure_recommendations(self):
        if not self.store.has_recommendations(self.token):
            raise ContentNotReady(
                message=STEP_BLOCKED_REASONS[Step.RECOMMENDATIONS],
                detail={"current_step": Step.CHAT.value},
            )

    def _ensure_consent(self, consent_type, step):
        accepted = any(
            c.consent_type == consent_type and c.accepted for c in self.store.get_consents(self.token)
        )
        if not accepted:
            raise InvalidTransition(
                message=STEP_BLOCKED_REASONS[step],
                detail={"current_step": step.value, "consent_type": consent_type},
            )

    def _patient_context(self) -> str:
        patient = self.store.get(self.token)
        return chat_service.build_patient_context(patient, self.store.get_questionnaire(self.token))

    def _schedule_appointment(self):
        """预约时间先保存到患者记录（员工端可见），再投递短信；短信发后即忘，失败只记录"""
        day = timezone.localdate() + timedelta(days=settings.APPOINTMENT_DAYS_AHEAD)
        appointment_at = timezone.make_aware(datetime.combine(day, time(hour=settings.APPOINTMENT_HOUR)))
        patient = self.store.set_appointment(self.token, appointment_at)
        try:
            send_appointment_sms_task.delay(patient.id, appointment_at.isoformat())
        except Exception:
            logger.exception("Could not queue appointment SMS for patient %s", patient.pk)
