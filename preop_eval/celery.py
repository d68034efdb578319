"""
Celery 应用：短信发送任务（evaluation.tasks）
Worker 与 Web 是独立进程，Prometheus 指标由 Worker 自己的 HTTP 端口暴露
"""
import logging
import os

from celery import Celery
from celery.signals import worker_ready
from prometheus_client import start_http_server

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'preop_eval.settings')

logger = logging.getLogger(__name__)

app = Celery('preop_eval')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

WORKER_METRICS_PORT = int(os.getenv('WORKER_METRICS_PORT', '9090'))


@worker_ready.connect
def start_worker_metrics(sender, **kwargs):
    """Worker 就绪后在 daemon 线程启动 /metrics（SMS 发送 / 失败计数）"""
    import evaluation.metrics  # noqa: F401 - 注册指标
    start_http_server(WORKER_METRICS_PORT)
    logger.info("Worker metrics on port %s", WORKER_METRICS_PORT)
