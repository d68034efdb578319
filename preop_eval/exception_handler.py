"""
统一异常处理：将 BaseAppException 转为统一 JSON 格式
"""
import logging

from django.http import JsonResponse

from .exceptions import BaseAppException

logger = logging.getLogger(__name__)


def app_exception_handler(request, exception):
    """
    处理 BaseAppException 及其子类，转为统一 JSON
    其他异常返回 None，交给 Django 默认处理
    """
    if not isinstance(exception, BaseAppException):
        return None

    _record_exception_metric(exception)
    if exception.http_status >= 500:
        logger.warning(
            "%s on %s: %s", exception.code, getattr(request, "path", ""), exception.message
        )
    return JsonResponse(
        exception.to_dict(),
        status=exception.http_status,
        json_dumps_params={"ensure_ascii": False},
    )


def _record_exception_metric(exception):
    """记录异常指标（延迟导入，避免循环导入）"""
    from evaluation.metrics import (
        VALIDATION_ERROR,
        BLOCK_ERROR,
        WORKFLOW_DENIED,
        PATIENT_NOT_FOUND,
        TRANSIENT_IO,
    )
    from .exceptions import (
        ValidationError,
        BlockError,
        InvalidTransition,
        ContentNotReady,
        PatientNotFound,
        TransientIO,
    )

    if isinstance(exception, ValidationError):
        VALIDATION_ERROR.inc()
    elif isinstance(exception, (InvalidTransition, ContentNotReady)):
        WORKFLOW_DENIED.labels(code=exception.code).inc()
    elif isinstance(exception, BlockError):
        BLOCK_ERROR.labels(code=exception.code).inc()
    elif isinstance(exception, PatientNotFound):
        PATIENT_NOT_FOUND.inc()
    elif isinstance(exception, TransientIO):
        TRANSIENT_IO.inc()
