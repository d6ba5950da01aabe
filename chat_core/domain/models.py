"""统一的对话与流式结果数据模型。

本模块定义了不同 Provider 之间共享的标准数据结构：

- ModelConfig: 一次对话使用的模型与采样参数。
- ChatMessage: 一条对话消息（system/user/assistant）。
- ChatResult: 非流式调用的统一结果。
- StreamChunk: 流式调用中 Adapter 交给调用方的最小单位。
- ChatTurnRequest: 前端发起一轮对话时携带的请求。

所有 Provider 适配器只依赖这些模型，并负责在各自的 API JSON
和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import List, Literal, Optional


# LLM 消息角色类型
Role = Literal["system", "user", "assistant"]

# 已知的 Provider 标识
ProviderName = Literal["openai", "anthropic", "local"]

DEFAULT_TEMPERATURE = 0.7


@dataclass(frozen=True)
class ModelConfig:
    """单轮对话内不可变的模型配置。

    - provider: Provider 标识，如 "openai"。
    - model: 厂商模型 ID，如 "gpt-4"。
    - max_tokens: 为空时由各 Adapter 使用 Provider 默认值。
    """

    provider: str
    model: str
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatResult:
    """一次非流式对话调用的结果。"""

    content: str
    usage: Optional[ChatUsage] = None


@dataclass(frozen=True)
class StreamChunk:
    """流式对话的增量结果。

    一旦产生 done=True 或 error 非空的块，该流不会再产生任何块。
    """

    content: str = ""
    done: bool = False
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.done or self.error is not None


@dataclass
class ChatTurnRequest:
    """前端发起的一轮对话。history 按原始顺序排列，不含本轮用户消息。"""

    conversation_id: Optional[str]
    project_id: Optional[str]
    workspace_id: Optional[str]
    message: str
    history: List[ChatMessage] = field(default_factory=list)
