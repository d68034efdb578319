"""
按配置选择对话所用的 LLM
USE_MOCK_LLM 打开时一律走 mock（本地开发、测试不产生外部调用）
"""
import logging
from typing import Dict, Type

from django.conf import settings

from .base import BaseLLMService
from .claude_service import ClaudeService
from .mock_service import MockLLMService
from .openai_service import OpenAIService

logger = logging.getLogger(__name__)

_SERVICE_REGISTRY: Dict[str, Type[BaseLLMService]] = {
    "openai": OpenAIService,
    "claude": ClaudeService,
    "mock": MockLLMService,
}

# 环境变量里常见的别名
_ALIASES = {
    "anthropic": "claude",
    "gpt": "openai",
}


def get_llm_service(provider: str | None = None) -> BaseLLMService:
    """
    provider 未指定时读 settings.LLM_PROVIDER（默认 openai）
    未知 provider 抛 ValueError（配置错误，不重试）
    """
    if getattr(settings, "USE_MOCK_LLM", True):
        return MockLLMService()

    name = str(provider or getattr(settings, "LLM_PROVIDER", "openai")).strip().lower()
    name = _ALIASES.get(name, name)
    service_cls = _SERVICE_REGISTRY.get(name)
    if service_cls is None:
        raise ValueError(f"Unknown LLM provider: {name}. Known: {sorted(_SERVICE_REGISTRY)}")
    logger.debug("Using LLM provider %s", name)
    return service_cls()
