"""
术前对话使用的 LLM：chat（多轮 + generate_recommendations 工具调用）和 generate（摘要）
OpenAI / Claude / mock 通过 LLM_PROVIDER、USE_MOCK_LLM 切换
"""
from .base import BaseLLMService, LLMReply, ToolCall
from .openai_service import OpenAIService
from .claude_service import ClaudeService
from .mock_service import MockLLMService
from .factory import get_llm_service

__all__ = [
    "BaseLLMService",
    "LLMReply",
    "ToolCall",
    "OpenAIService",
    "ClaudeService",
    "MockLLMService",
    "get_llm_service",
]
