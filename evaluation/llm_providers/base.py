"""
LLM 服务抽象基类
业务代码只依赖此接口，不关心具体实现
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolCall:
    """LLM 请求调用的工具：name + 已解析的参数"""
    name: str
    arguments: dict = field(default_factory=dict)


@dataclass
class LLMReply:
    """多轮对话的返回：文本 + 可能的工具调用"""
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    def find_tool_call(self, name: str) -> ToolCall | None:
        for call in self.tool_calls:
            if call.name == name:
                return call
        return None


class BaseLLMService(ABC):
    """
    抽象基类：所有 LLM 服务的父类
    新增 LLM 时只需继承此类并实现 generate / chat
    """

    provider_id: str = "unknown"  # 子类覆盖，如 "openai", "claude"

    @abstractmethod
    def generate(
        self,
        system_message: str,
        user_message: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        """
        单轮生成文本（如对话摘要）
        :param system_message: 系统提示（角色设定）
        :param user_message: 用户提示（实际任务内容）
        :param temperature: 随机度 0-1
        :param max_tokens: 最大生成 token 数
        :return: 生成的文本内容
        """
        pass

    @abstractmethod
    def chat(
        self,
        system_message: str,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMReply:
        """
        多轮对话
        :param messages: [{"role": "user" | "assistant", "content": str}, ...]，按时间顺序
        :param tools: 通用工具定义 [{"name", "description", "parameters"(JSON Schema)}]
        :return: LLMReply
        """
        pass
