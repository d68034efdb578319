"""
数据校验和格式转换（前端 ↔ 后端）
"""
import json
import re
from datetime import datetime

from preop_eval.exceptions import ValidationError

from .steps import PatientStatus, parse_step
from .types import RecommendationData

# DNI: 7-8 位数字，可带一位校验字母
DNI_PATTERN = re.compile(r"^[0-9]{7,8}[A-Za-z]?$")

MAX_MESSAGE_LENGTH = 4000

PROCESS_STEP_ACTIONS = ("validate", "complete", "get_current_step")

QUESTIONNAIRE_REQUIRED = [
    "emergency_contact_name",
    "emergency_contact_phone",
    "emergency_contact_relationship",
]

QUESTIONNAIRE_TEXT_FIELDS = [
    "allergies",
    "current_medications",
    "medical_history",
    "previous_surgeries",
    "family_history",
    "exercise",
    "diet",
    "additional_concerns",
]

QUESTIONNAIRE_BOOL_FIELDS = ["has_allergies", "smoking", "alcohol"]

# 字段 -> (最小值, 最大值)
QUESTIONNAIRE_RANGES = {
    "sleep_hours": (0, 24),
    "stress_level": (0, 10),
}


def _raise_if_errors(errors):
    if errors:
        raise ValidationError(
            message="Datos inválidos",
            code="VALIDATION_ERROR",
            detail={"errors": errors},
        )


def _validate_required_string(value, field_name):
    """必填字符串：非空"""
    if value is None or not isinstance(value, str) or not value.strip():
        return f"{field_name} es obligatorio"
    return None


def _validate_date(value):
    """YYYY-MM-DD 格式的合法日期"""
    if not value or not isinstance(value, str):
        return "La fecha debe tener formato YYYY-MM-DD"
    s = value.strip()[:10]
    try:
        datetime.strptime(s, "%Y-%m-%d")
    except ValueError:
        return "La fecha debe tener formato YYYY-MM-DD"
    return None


def parse_json_body(body):
    """
    解析 POST body (JSON) -> dict
    空 body 视为 {}；JSON 格式错误或不是对象时抛出 ValidationError
    """
    if not body:
        return {}
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(
            message="Invalid JSON format",
            code="INVALID_JSON",
            detail={"error": str(e)},
        )
    if not isinstance(data, dict):
        raise ValidationError(
            message="El cuerpo de la petición debe ser un objeto JSON",
            code="INVALID_REQUEST",
            detail={"errors": [{"field": "_", "message": "El cuerpo debe ser un objeto JSON"}]},
        )
    return data


def validate_verify_data(data):
    """DNI 必填；phone 可选"""
    dni = str(data.get("dni") or "").strip().upper()
    if not DNI_PATTERN.match(dni):
        _raise_if_errors([{"field": "dni", "message": "El DNI debe tener 7 u 8 dígitos"}])
    phone = data.get("phone")
    if phone is not None and not isinstance(phone, str):
        _raise_if_errors([{"field": "phone", "message": "Teléfono inválido"}])
    return {"dni": dni, "phone": (phone or "").strip() or None}


def validate_questionnaire_data(data):
    """
    紧急联系人三项必填；布尔字段必须是 true/false
    sleep_hours 0-24，stress_level 0-10
    返回可直接保存的 dict
    """
    errors = []
    cleaned = {}
    for field in QUESTIONNAIRE_REQUIRED:
        msg = _validate_required_string(data.get(field), field)
        if msg:
            errors.append({"field": field, "message": msg})
        else:
            cleaned[field] = data[field].strip()

    for field in QUESTIONNAIRE_BOOL_FIELDS:
        value = data.get(field, False)
        if not isinstance(value, bool):
            errors.append({"field": field, "message": "Debe ser verdadero o falso"})
        else:
            cleaned[field] = value

    for field in QUESTIONNAIRE_TEXT_FIELDS:
        value = data.get(field) or ""
        if not isinstance(value, str):
            errors.append({"field": field, "message": "Debe ser texto"})
        else:
            cleaned[field] = value.strip()

    for field, (low, high) in QUESTIONNAIRE_RANGES.items():
        value = data.get(field)
        if value is None or value == "":
            cleaned[field] = None
            continue
        if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
            errors.append({"field": field, "message": f"Debe ser un número entre {low} y {high}"})
        else:
            cleaned[field] = value

    if cleaned.get("has_allergies") and not cleaned.get("allergies"):
        errors.append({"field": "allergies", "message": "Indique sus alergias"})

    _raise_if_errors(errors)
    return cleaned


def validate_chat_message(data):
    message = data.get("message")
    if not isinstance(message, str) or not message.strip():
        raise ValidationError(message="El mensaje no puede estar vacío", code="EMPTY_MESSAGE")
    if len(message) > MAX_MESSAGE_LENGTH:
        _raise_if_errors([{"field": "message", "message": f"Máximo {MAX_MESSAGE_LENGTH} caracteres"}])
    return message.strip()


def validate_data_consent(data):
    accepted = data.get("accepted")
    if not isinstance(accepted, bool):
        _raise_if_errors([{"field": "accepted", "message": "Debe ser verdadero o falso"}])
    return accepted


def validate_consent_data(data):
    """accepted / signature_data / expected_version（可选，做 compare-and-swap）"""
    errors = []
    accepted = data.get("accepted")
    if not isinstance(accepted, bool):
        errors.append({"field": "accepted", "message": "Debe ser verdadero o falso"})
    signature = data.get("signature_data") or ""
    if not isinstance(signature, str):
        errors.append({"field": "signature_data", "message": "Firma inválida"})
    expected_version = data.get("expected_version")
    if expected_version is not None and (isinstance(expected_version, bool) or not isinstance(expected_version, int)):
        errors.append({"field": "expected_version", "message": "Debe ser un número entero"})
    _raise_if_errors(errors)
    return {"accepted": accepted, "signature": signature, "expected_version": expected_version}


def validate_step_value(value, field="target_step"):
    """字符串 → Step；非法值抛 ValidationError"""
    try:
        return parse_step(value)
    except ValueError:
        raise ValidationError(
            message="Paso inválido",
            code="INVALID_STEP",
            detail={"field": field, "value": value},
        )


def validate_process_step(data):
    """action 为 validate / complete / get_current_step；前两者需要 target_step"""
    action = data.get("action")
    if action not in PROCESS_STEP_ACTIONS:
        raise ValidationError(
            message="Acción inválida",
            code="INVALID_ACTION",
            detail={"action": action, "allowed": list(PROCESS_STEP_ACTIONS)},
        )
    step = None
    if action != "get_current_step":
        step = validate_step_value(data.get("target_step"))
    return {"action": action, "target_step": step}


def validate_status_data(data):
    status = data.get("status")
    if status not in PatientStatus.values:
        raise ValidationError(
            message="Estado inválido",
            code="INVALID_STATUS",
            detail={"status": status, "allowed": list(PatientStatus.values)},
        )
    return status


def validate_recommendations_payload(data):
    """员工提交的建议列表，逐条校验，错误汇总"""
    items = data.get("recommendations")
    if not isinstance(items, list) or not items:
        raise ValidationError(
            message="Debe incluir al menos una recomendación",
            code="EMPTY_RECOMMENDATIONS",
        )
    records, errors = [], []
    for index, item in enumerate(items):
        try:
            records.append(RecommendationData.from_payload(item))
        except ValidationError as exc:
            for err in exc.detail.get("errors") or [{"field": "_", "message": exc.message}]:
                errors.append({"field": f"recommendations[{index}].{err['field']}", "message": err["message"]})
    _raise_if_errors(errors)
    return records


def validate_system_prompt(data):
    errors = []
    for field in ("name", "content"):
        msg = _validate_required_string(data.get(field), field)
        if msg:
            errors.append({"field": field, "message": msg})
    _raise_if_errors(errors)
    return data["name"].strip(), data["content"].strip()


def validate_search_params(params):
    """GET 参数：status / q / start / end（YYYY-MM-DD，按预约手术日期过滤）"""
    errors = []
    status = (params.get("status") or "").strip() or None
    if status and status not in PatientStatus.values:
        errors.append({"field": "status", "message": "Estado inválido"})
    dates = {}
    for field in ("start", "end"):
        value = (params.get(field) or "").strip()
        if not value:
            dates[field] = None
            continue
        msg = _validate_date(value)
        if msg:
            errors.append({"field": field, "message": msg})
        else:
            dates[field] = datetime.strptime(value[:10], "%Y-%m-%d").date()
    _raise_if_errors(errors)
    return {
        "status": status,
        "q": (params.get("q") or "").strip(),
        "start": dates.get("start"),
        "end": dates.get("end"),
    }
