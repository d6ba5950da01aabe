"""Chat Core 顶层包。

浏览器 IDE 聊天功能的后端核心：统一的 Provider 抽象
（OpenAI / Anthropic / 本地模型）、流式解码、对话编排与 SSE 接口。
"""

from chat_core.agents.chat_engine import ChatEngine
from chat_core.providers import create_provider

__all__ = ["ChatEngine", "create_provider"]
