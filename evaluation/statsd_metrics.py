"""
Worker 进程指标：通过 StatsD UDP 发送，由 statsd_exporter 暴露给 Prometheus
不依赖进程内存，多进程 prefork 下可正确聚合
"""
import statsd
from django.conf import settings

_PREFIX = "preop"

_client = None


def _get_client():
    global _client
    if _client is None:
        _client = statsd.StatsClient(settings.STATSD_HOST, settings.STATSD_PORT, prefix=_PREFIX)
    return _client


def sms_sent(kind: str):
    # 用 metric 名携带短信类型，由 statsd_exporter mapping 转为 label
    _get_client().incr(f"sms_sent.{kind}")


def sms_failed(kind: str):
    _get_client().incr(f"sms_failed.{kind}")


def sms_retry(kind: str):
    _get_client().incr(f"sms_retry.{kind}")


def sms_task_duration_seconds(seconds: float):
    _get_client().timing("sms_task_duration", int(seconds * 1000))
