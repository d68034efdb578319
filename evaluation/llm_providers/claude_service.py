"""
Anthropic Claude 实现
"""
import os

from anthropic import Anthropic
from django.conf import settings

from .base import BaseLLMService, LLMReply, ToolCall


def _normalize_messages(messages):
    """
    Claude 要求第一条为 user、且 user / assistant 交替
    连续同角色消息合并；以 assistant 开头时补一条 user 开场
    """
    normalized = []
    for msg in messages:
        if normalized and normalized[-1]["role"] == msg["role"]:
            normalized[-1]["content"] += "\n\n" + msg["content"]
        else:
            normalized.append({"role": msg["role"], "content": msg["content"]})
    if normalized and normalized[0]["role"] != "user":
        normalized.insert(0, {"role": "user", "content": "Hola, quiero comenzar mi evaluación."})
    return normalized


class ClaudeService(BaseLLMService):
    """Anthropic Claude API"""

    provider_id = "claude"

    def __init__(self, *, api_key: str | None = None, model: str | None = None):
        if api_key is None:
            api_key = os.getenv("ANTHROPIC_API_KEY") or getattr(settings, "ANTHROPIC_API_KEY", "")
        self._api_key = api_key
        self._model = model or getattr(settings, "CLAUDE_MODEL", "claude-3-5-sonnet-20241022")

    def _client(self) -> Anthropic:
        if not self._api_key:
            raise ValueError("ANTHROPIC_API_KEY not found in environment or settings")
        return Anthropic(api_key=self._api_key)

    def generate(
        self,
        system_message: str,
        user_message: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        client = self._client()
        message = client.messages.create(
            model=self._model,
            max_tokens=max_tokens,
            system=system_message,
            messages=[{"role": "user", "content": user_message}],
            temperature=temperature,
        )
        return self._reply_from_message(message).text

    def chat(
        self,
        system_message,
        messages,
        *,
        tools=None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMReply:
        client = self._client()
        kwargs = {}
        if tools:
            kwargs["tools"] = [
                {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "input_schema": tool["parameters"],
                }
                for tool in tools
            ]
        message = client.messages.create(
            model=self._model,
            max_tokens=max_tokens,
            system=system_message,
            messages=_normalize_messages(messages),
            temperature=temperature,
            **kwargs,
        )
        return self._reply_from_message(message)

    def _reply_from_message(self, message) -> LLMReply:
        # Claude 返回 content 为 ContentBlock 列表：text 拼接，tool_use 转为 ToolCall
        text_parts = []
        calls = []
        for block in message.content:
            if getattr(block, "type", None) == "tool_use":
                calls.append(ToolCall(name=block.name, arguments=dict(block.input or {})))
            elif hasattr(block, "text"):
                text_parts.append(block.text)
        return LLMReply(text="".join(text_parts), tool_calls=calls)
