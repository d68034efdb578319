"""
短信发送：HTTP 短信网关（POST phoneNumber / message / patientName）
只负责拼消息和发请求；重试与失败记录由 tasks 处理
"""
import logging
import re
from datetime import date, datetime

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

_WEEKDAYS = ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"]
_MONTHS = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]


class SmsDeliveryError(Exception):
    """网关返回失败"""


class SmsNotDeliverable(SmsDeliveryError):
    """网关未配置或号码缺失，重试也不会成功"""


def clean_phone(phone) -> str:
    return re.sub(r"\s+", "", phone or "")


def format_long_date(value) -> str:
    """lunes, 3 de marzo de 2025（datetime 会附带时间）"""
    text = f"{_WEEKDAYS[value.weekday()]}, {value.day} de {_MONTHS[value.month - 1]} de {value.year}"
    if isinstance(value, datetime):
        text += f", {value:%H:%M}"
    return text


def format_short_date(value) -> str:
    return value.strftime("%d/%m/%Y") if isinstance(value, date) else "Por confirmar"


def appointment_message(patient, appointment_at: datetime) -> str:
    return (
        f"Cita: {format_long_date(appointment_at)}\n"
        f"Procedimiento: {patient.procedure or 'su procedimiento'}\n"
        "Llegue 30min antes.\n"
        "Clínica Médica"
    )


def validation_message(patient) -> str:
    procedure_text = ""
    if patient.procedure_date:
        procedure_text = f"\nCirugía programada: {format_long_date(patient.procedure_date)}"
    return (
        f"¡Hola {patient.name}!\n\n"
        f"Su evaluación pre-anestésica para {patient.procedure or 'su procedimiento'} "
        f"ha sido VALIDADA por nuestro equipo médico.{procedure_text}\n\n"
        "Todo está en orden para su cirugía. Si tiene alguna consulta, no dude en contactarnos.\n\n"
        "Equipo Médico"
    )


def access_link_message(patient) -> str:
    first_name = (patient.name or "").split(" ")[0]
    link = f"{settings.FRONTEND_URL.rstrip('/')}/verify"
    return (
        f"Hola {first_name}! Tu {patient.procedure or 'procedimiento'} es el "
        f"{format_short_date(patient.procedure_date)}. Accede con tu DNI: {link}"
    )


def send_sms(phone, message, patient_name="") -> dict:
    """
    发送一条短信，返回网关的 JSON
    网关未配置 / 号码为空抛 SmsNotDeliverable；HTTP 非 2xx / success=false 抛 SmsDeliveryError
    网络错误（requests.RequestException）原样抛出，交给任务重试
    """
    url = getattr(settings, "SMS_GATEWAY_URL", "")
    if not url:
        raise SmsNotDeliverable("SMS_GATEWAY_URL is not configured")
    number = clean_phone(phone)
    if not number:
        raise SmsNotDeliverable(f"Patient {patient_name or '?'} has no phone number")

    response = requests.post(
        url,
        json={"phoneNumber": number, "message": message, "patientName": patient_name},
        timeout=getattr(settings, "SMS_TIMEOUT_SECONDS", 10),
    )
    if not response.ok:
        raise SmsDeliveryError(f"SMS gateway returned {response.status_code}: {response.text[:200]}")
    data = response.json()
    if not data.get("success"):
        raise SmsDeliveryError(f"SMS gateway rejected message: {data.get('error') or data}")
    logger.info("SMS sent to %s (message id %s)", patient_name or number, data.get("messageId", "sent"))
    return data
