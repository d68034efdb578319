"""
OpenAI GPT 实现
"""
import json
import logging
import os

from django.conf import settings
from openai import OpenAI

from .base import BaseLLMService, LLMReply, ToolCall

logger = logging.getLogger(__name__)


class OpenAIService(BaseLLMService):
    """OpenAI API (GPT-4o-mini 等)"""

    provider_id = "openai"

    def __init__(self, *, api_key: str | None = None, model: str | None = None):
        if api_key is None:
            api_key = os.getenv("OPENAI_API_KEY") or getattr(settings, "OPENAI_API_KEY", "")
        self._api_key = api_key
        self._model = model or getattr(settings, "OPENAI_MODEL", "gpt-4o-mini")

    def _client(self) -> OpenAI:
        if not self._api_key:
            raise ValueError("OPENAI_API_KEY not found in environment or settings")
        return OpenAI(api_key=self._api_key)

    def generate(
        self,
        system_message: str,
        user_message: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        client = self._client()
        response = client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system_message},
                {"role": "user", "content": user_message},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content or ""

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
            # 通用工具定义 → OpenAI function 格式
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool["name"],
                        "description": tool.get("description", ""),
                        "parameters": tool["parameters"],
                    },
                }
                for tool in tools
            ]
            kwargs["tool_choice"] = "auto"

        response = client.chat.completions.create(
            model=self._model,
            messages=[{"role": "system", "content": system_message}, *messages],
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
        message = response.choices[0].message
        calls = []
        for call in message.tool_calls or []:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning("Discarding tool call %s with malformed arguments", call.function.name)
                continue
            calls.append(ToolCall(name=call.function.name, arguments=arguments))
        return LLMReply(text=message.content or "", tool_calls=calls)
