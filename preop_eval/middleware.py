"""
中间件：View 抛出的异常统一转 JSON
- BaseAppException → app_exception_handler
- /api/ 下的其他异常 → 记录日志并返回 500 INTERNAL_ERROR（DEBUG 时交给 Django 调试页面）
"""
import logging

from django.conf import settings
from django.http import JsonResponse

from .exception_handler import app_exception_handler

logger = logging.getLogger(__name__)


class AppExceptionMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        response = app_exception_handler(request, exception)
        if response is not None or settings.DEBUG:
            return response
        if not request.path.startswith("/api/"):
            return None
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return JsonResponse(
            {
                "success": False,
                "type": "error",
                "code": "INTERNAL_ERROR",
                "message": "Error interno del servidor",
                "detail": {},
            },
            status=500,
        )
