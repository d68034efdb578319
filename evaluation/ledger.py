"""
步骤记录（Step Ledger）：患者流程进度的唯一来源，以 token 为键
- get_current_step: 按固定顺序找第一个未完成的步骤，全部完成则为 completed；只读、幂等
- mark_completed: 前置步骤未完成 / 流程已冻结 / 已记录过 → 返回 False，不修改任何数据
只有本模块写 StepCompletion
"""
import logging

from django.db import IntegrityError, transaction

from preop_eval.exceptions import PatientNotFound, StaleWrite

from .metrics import STEP_COMPLETED
from .models import Patient, StepCompletion
from .steps import STEP_ORDER, Step, PatientStatus, derive_status, first_missing_step, parse_step, predecessor
from .store import translate_db_errors

logger = logging.getLogger(__name__)


def _get_patient(token, *, for_update=False) -> Patient:
    if not token or not isinstance(token, str):
        raise PatientNotFound()
    queryset = Patient.objects.select_for_update() if for_update else Patient.objects
    try:
        return queryset.get(token=token)
    except Patient.DoesNotExist:
        raise PatientNotFound(detail={"token": token[:8] + "…"})


def _completed_set(patient) -> set:
    return set(patient.step_completions.values_list("step", flat=True))


@translate_db_errors
def get_current_step(token) -> Step:
    return first_missing_step(_completed_set(_get_patient(token)))


@translate_db_errors
def completed_steps(token) -> list[Step]:
    done = _completed_set(_get_patient(token))
    return [step for step in STEP_ORDER if step in done]


@translate_db_errors
def is_frozen(token) -> bool:
    """completed 已记录 → 流程冻结，任何步骤不可再写"""
    patient = _get_patient(token)
    return patient.step_completions.filter(step=Step.COMPLETED).exists()


@translate_db_errors
def progress(token) -> tuple[Step, bool]:
    """(当前步骤, 是否冻结)：同一次读取得到，二者一致"""
    done = _completed_set(_get_patient(token))
    return first_missing_step(done), Step.COMPLETED in done


@translate_db_errors
def ledger_version(token) -> int:
    return _get_patient(token).ledger_version


@translate_db_errors
def mark_completed(token, step, *, expected_version=None) -> bool:
    """
    记录步骤完成
    在事务内锁住患者行，与同一患者的并发读写串行化
    expected_version 给定且与数据库不一致时抛 StaleWrite
    """
    step = parse_step(step)
    with transaction.atomic():
        patient = _get_patient(token, for_update=True)
        if expected_version is not None and patient.ledger_version != expected_version:
            raise StaleWrite(detail={"expected": expected_version, "actual": patient.ledger_version})

        done = _completed_set(patient)
        if Step.COMPLETED in done:
            logger.info("Ledger frozen for patient %s, refusing %s", patient.pk, step)
            return False
        if step in done:
            return False
        required = predecessor(step)
        if required is not None and required not in done:
            logger.info("Patient %s: %s requires %s first", patient.pk, step, required)
            return False

        try:
            with transaction.atomic():
                StepCompletion.objects.create(patient=patient, step=step)
        except IntegrityError:
            return False
        done.add(step)

        patient.ledger_version += 1
        patient.status = derive_status(done, validated=patient.validated_at is not None)
        patient.save(update_fields=["ledger_version", "status", "updated_at"])

    STEP_COMPLETED.labels(step=step.value).inc()
    logger.info("Patient %s completed step %s (ledger v%s)", patient.pk, step, patient.ledger_version)
    return True


def recompute_status(patient) -> PatientStatus:
    """员工校验后重新推导粗粒度状态并保存"""
    status = derive_status(_completed_set(patient), validated=patient.validated_at is not None)
    if patient.status != status:
        patient.status = status
        patient.save(update_fields=["status", "updated_at"])
    return status
