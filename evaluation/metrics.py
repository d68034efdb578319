"""
Prometheus 指标定义
"""
from prometheus_client import Counter, Histogram

# 业务指标
PATIENTS_IMPORTED = Counter(
    "patients_imported_total",
    "名单导入创建的患者数",
    ["source"],
)
STEP_COMPLETED = Counter(
    "workflow_step_completed_total",
    "各步骤完成次数",
    ["step"],
)
WORKFLOW_DENIED = Counter(
    "workflow_transition_denied_total",
    "被拒绝的步骤推进次数",
    ["code"],
)
CHAT_TURNS = Counter(
    "chat_turns_total",
    "患者与 AI 的对话轮数",
)
RECOMMENDATIONS_GENERATED = Counter(
    "recommendations_generated_total",
    "AI 生成建议的次数",
)
EVALUATION_VALIDATED = Counter(
    "evaluation_validated_total",
    "员工校验通过的评估数",
)
SMS_SENT = Counter(
    "sms_sent_total",
    "发送成功的短信数",
    ["kind"],
)
SMS_FAILED = Counter(
    "sms_failed_total",
    "发送失败的短信数",
    ["kind"],
)
LLM_PROVIDER_USAGE = Counter(
    "llm_provider_usage_total",
    "各 LLM 使用次数",
    ["provider"],
)

# 性能指标（Histogram 自动提供 _count, _sum, _bucket）
API_CHAT_DURATION = Histogram(
    "api_chat_duration_seconds",
    "POST /api/patients/<token>/chat/ 响应时间",
    buckets=(0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0),
)
API_STEP_DURATION = Histogram(
    "api_step_duration_seconds",
    "步骤查询 / 校验接口响应时间",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
)
API_ADMIN_DURATION = Histogram(
    "api_admin_duration_seconds",
    "员工端接口响应时间",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 3.0),
)
LLM_API_LATENCY = Histogram(
    "llm_api_latency_seconds",
    "LLM 调用耗时",
    buckets=(1, 2, 5, 10, 20, 30, 60),
)

# 错误指标
HTTP_5XX = Counter("http_5xx_total", "5xx 错误数")
HTTP_4XX = Counter("http_4xx_total", "4xx 错误数", ["code"])
VALIDATION_ERROR = Counter("validation_error_total", "数据格式校验失败次数")
BLOCK_ERROR = Counter("block_error_total", "Block 错误次数", ["code"])
PATIENT_NOT_FOUND = Counter("patient_not_found_total", "无效 token 访问次数")
TRANSIENT_IO = Counter("transient_io_total", "存储 / AI 临时失败次数")
LLM_API_ERROR = Counter("llm_api_error_total", "LLM API 调用失败次数")
