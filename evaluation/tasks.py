"""
Celery 异步任务：短信通知（预约 / 校验通过 / 访问链接）
发后即忘：失败时指数退避重试（最多 3 次），最终失败只记录，不影响患者流程
"""
import logging
import time
from datetime import datetime

import requests
from celery import shared_task

from evaluation import statsd_metrics
from evaluation.metrics import SMS_FAILED, SMS_SENT
from evaluation.models import Patient
from evaluation.sms import (
    SmsDeliveryError,
    SmsNotDeliverable,
    access_link_message,
    appointment_message,
    send_sms,
    validation_message,
)

logger = logging.getLogger(__name__)


def _deliver(task, kind, patient, message):
    """
    发送并处理失败
    失败时指数退避重试：2^retries 秒（1次:2s, 2次:4s, 3次:8s）
    """
    start = time.perf_counter()
    try:
        data = send_sms(patient.phone, message, patient.name)
    except SmsNotDeliverable as exc:
        logger.warning("%s SMS for patient %s not sent: %s", kind, patient.pk, exc)
        SMS_FAILED.labels(kind=kind).inc()
        statsd_metrics.sms_failed(kind)
        return {"success": False, "error": str(exc)}
    except (SmsDeliveryError, requests.RequestException) as exc:
        if task.request.retries >= task.max_retries:
            logger.error("%s SMS for patient %s failed after %s retries: %s", kind, patient.pk, task.request.retries, exc)
            SMS_FAILED.labels(kind=kind).inc()
            statsd_metrics.sms_failed(kind)
            statsd_metrics.sms_task_duration_seconds(time.perf_counter() - start)
            return {"success": False, "error": str(exc)}
        statsd_metrics.sms_retry(kind)
        raise task.retry(exc=exc, countdown=2 ** task.request.retries)

    SMS_SENT.labels(kind=kind).inc()
    statsd_metrics.sms_sent(kind)
    statsd_metrics.sms_task_duration_seconds(time.perf_counter() - start)
    return {"success": True, "message_id": data.get("messageId", "sent"), "patient": patient.name}


def _load_patient(patient_id):
    try:
        return Patient.objects.get(id=patient_id)
    except Patient.DoesNotExist:
        logger.warning("SMS task skipped: patient %s does not exist", patient_id)
        return None


@shared_task(bind=True, max_retries=3)
def send_appointment_sms_task(self, patient_id, appointment_at):
    """评估完成后的预约短信；appointment_at 为 ISO 格式时间"""
    patient = _load_patient(patient_id)
    if patient is None:
        return {"success": False, "error": "patient not found"}
    when = datetime.fromisoformat(appointment_at)
    return _deliver(self, "appointment", patient, appointment_message(patient, when))


@shared_task(bind=True, max_retries=3)
def send_validation_sms_task(self, patient_id):
    """员工校验通过后的通知短信"""
    patient = _load_patient(patient_id)
    if patient is None:
        return {"success": False, "error": "patient not found"}
    return _deliver(self, "validation", patient, validation_message(patient))


@shared_task(bind=True, max_retries=3)
def send_patient_link_task(self, patient_id):
    """名单导入后的访问链接短信（患者用 DNI 登录）"""
    patient = _load_patient(patient_id)
    if patient is None:
        return {"success": False, "error": "patient not found"}
    return _deliver(self, "access_link", patient, access_link_message(patient))
