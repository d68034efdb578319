"""
HTTP 接口：只做请求解析和响应包装
业务逻辑在 services / WorkflowDriver，错误由 AppExceptionMiddleware 统一转 JSON
"""
from django.http import HttpResponse, JsonResponse
from django.views.decorators.cache import never_cache
from django.views.decorators.csrf import csrf_exempt
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from preop_eval.exceptions import BlockError

from . import ledger, serializers, services, validator
from .workflow import WorkflowDriver


def _ok(data, status=200):
    return JsonResponse(data, status=status, json_dumps_params={"ensure_ascii": False})


def _require_method(request, *methods):
    if request.method not in methods:
        raise BlockError(
            message="Method not allowed",
            code="METHOD_NOT_ALLOWED",
            detail={"allowed": list(methods)},
            http_status=405,
        )


# ---------- 患者端 ----------

@csrf_exempt
def verify(request):
    """POST {dni, phone?} → token"""
    _require_method(request, "POST")
    data = serializers.validate_verify_data(serializers.parse_json_body(request.body))
    return _ok(services.verify_identity(data["dni"], data["phone"]))


def patient_state(request, token):
    _require_method(request, "GET")
    return _ok({"success": True, "data": WorkflowDriver(token).state()})


def current_step(request, token):
    _require_method(request, "GET")
    return _ok({"success": True, "current_step": ledger.get_current_step(token).value})


@csrf_exempt
def validate_step(request, token):
    """POST {target_step} → {allowed, reason?}；只判断，不修改"""
    _require_method(request, "POST")
    data = serializers.parse_json_body(request.body)
    step = serializers.validate_step_value(data.get("target_step"))
    return _ok({"success": True, "validation": validator.validate(token, step).to_dict()})


@csrf_exempt
def process_step(request, token):
    """POST {action: validate|complete|get_current_step, target_step?}"""
    _require_method(request, "POST")
    data = serializers.validate_process_step(serializers.parse_json_body(request.body))
    return _ok(services.process_step(token, data["action"], data["target_step"]))


@csrf_exempt
def questionnaire(request, token):
    _require_method(request, "GET", "POST")
    driver = WorkflowDriver(token)
    if request.method == "GET":
        return _ok({"success": True, "data": driver.store.get_questionnaire(token)})
    data = serializers.validate_questionnaire_data(serializers.parse_json_body(request.body))
    return _ok({"success": True, "data": driver.save_questionnaire(data)})


@csrf_exempt
def data_consent(request, token):
    _require_method(request, "POST")
    accepted = serializers.validate_data_consent(serializers.parse_json_body(request.body))
    return _ok({"success": True, "data": WorkflowDriver(token).accept_data_consent(accepted)})


@csrf_exempt
def chat(request, token):
    """GET: 对话记录；POST {message}: 发言并得到 AI 回复"""
    _require_method(request, "GET", "POST")
    driver = WorkflowDriver(token)
    if request.method == "GET":
        return _ok({"success": True, "data": {"messages": driver.conversation()}})
    message = serializers.validate_chat_message(serializers.parse_json_body(request.body))
    return _ok({"success": True, "data": driver.send_chat_message(message)})


@csrf_exempt
def finish_chat(request, token):
    _require_method(request, "POST")
    return _ok({"success": True, "data": WorkflowDriver(token).finish_chat()})


def recommendations(request, token):
    _require_method(request, "GET")
    return _ok({"success": True, "data": {"recommendations": WorkflowDriver(token).recommendations()}})


@csrf_exempt
def acknowledge_recommendations(request, token):
    _require_method(request, "POST")
    return _ok({"success": True, "data": WorkflowDriver(token).acknowledge_recommendations()})


@csrf_exempt
def informed_consent(request, token):
    """POST {accepted, signature_data, expected_version?} → 签署并完成评估"""
    _require_method(request, "POST")
    data = serializers.validate_consent_data(serializers.parse_json_body(request.body))
    state = WorkflowDriver(token).sign_informed_consent(
        data["accepted"], data["signature"], expected_version=data["expected_version"]
    )
    return _ok({"success": True, "data": state})


# ---------- 员工端 ----------

@csrf_exempt
def import_patients(request):
    """
    POST JSON {patients: [...], confirm?, send_links?}
    或 CSV（Content-Type: text/csv，或 multipart 字段 file），?confirm=1 确认警告
    """
    _require_method(request, "POST")
    confirm = True if request.GET.get("confirm") == "1" else None
    upload = request.FILES.get("file")
    if upload is not None:
        source = "json" if upload.name.lower().endswith(".json") else "csv"
        return _ok(services.import_roster(upload.read(), source, confirm=confirm), status=201)
    source = "csv" if request.content_type in ("text/csv", "application/csv") else "json"
    return _ok(services.import_roster(request.body, source, confirm=confirm), status=201)


def patient_list(request):
    """GET ?status=&q=&start=&end=&export=1"""
    _require_method(request, "GET")
    params = serializers.validate_search_params(request.GET)
    if request.GET.get("export") == "1":
        return services.search_patients(export=True, **params)
    return _ok(services.search_patients(**params))


@csrf_exempt
def patient_status(request, token):
    _require_method(request, "POST")
    data = serializers.parse_json_body(request.body)
    status = serializers.validate_status_data(data)
    return _ok(services.set_patient_status(token, status, staff=str(data.get("staff") or "")))


@csrf_exempt
def validate_evaluation(request, token):
    """POST {validated_by, recommendations?}"""
    _require_method(request, "POST")
    data = serializers.parse_json_body(request.body)
    records = None
    if "recommendations" in data:
        records = serializers.validate_recommendations_payload(data)
    return _ok(services.validate_evaluation(token, str(data.get("validated_by") or ""), records))


def patient_report(request, token):
    """GET ?summary=1 时重新生成 AI 摘要"""
    _require_method(request, "GET")
    return _ok(services.patient_report(token, regenerate_summary=request.GET.get("summary") == "1"))


@csrf_exempt
def admin_recommendations(request, token):
    _require_method(request, "POST")
    records = serializers.validate_recommendations_payload(serializers.parse_json_body(request.body))
    return _ok(services.replace_recommendations(token, records))


@csrf_exempt
def system_prompts(request):
    _require_method(request, "GET", "POST")
    if request.method == "GET":
        return _ok(services.list_system_prompts())
    name, content = serializers.validate_system_prompt(serializers.parse_json_body(request.body))
    return _ok(services.upsert_system_prompt(name, content))


# ---------- 监控 ----------

@never_cache
def metrics(request):
    """Prometheus 抓取端点（Web 进程的指标；Worker 另有端口）"""
    _require_method(request, "GET")
    return HttpResponse(generate_latest(REGISTRY), content_type=CONTENT_TYPE_LATEST)
