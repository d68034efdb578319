"""
Prometheus 指标中间件：记录请求耗时、状态码
"""
import time

from preop_eval.exceptions import BaseAppException

from .metrics import (
    API_ADMIN_DURATION,
    API_CHAT_DURATION,
    API_STEP_DURATION,
    HTTP_4XX,
    HTTP_5XX,
)

_STEP_SUFFIXES = ("/step/", "/validate-step/", "/process-step/")


class MetricsMiddleware:
    """记录 HTTP 请求指标"""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        start = time.perf_counter()
        try:
            response = self.get_response(request)
            self._record(request, response.status_code, time.perf_counter() - start)
            return response
        except Exception as exc:
            duration = time.perf_counter() - start
            self._record(request, self._status_from_exception(exc), duration)
            raise

    def _status_from_exception(self, exc):
        if isinstance(exc, BaseAppException):
            return exc.http_status
        return 500

    def _record(self, request, status, duration):
        path = getattr(request, "path", "") or ""
        if status >= 500:
            HTTP_5XX.inc()
        elif status >= 400:
            HTTP_4XX.labels(code=str(status)).inc()

        if path.startswith("/api/admin/"):
            API_ADMIN_DURATION.observe(duration)
        elif path.startswith("/api/patients/") and path.endswith("/chat/") and request.method == "POST":
            API_CHAT_DURATION.observe(duration)
        elif path.startswith("/api/patients/") and path.endswith(_STEP_SUFFIXES):
            API_STEP_DURATION.observe(duration)
