"""Provider 抽象接口与各 Adapter 共用的辅助函数。

上层 ChatEngine 不直接依赖具体厂商的 HTTP 格式，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 OpenAIClient）。
- chat(messages)：一次非流式调用，返回 ChatResult。
- stream_chat(messages)：异步生成器，逐个产出 StreamChunk，
  以 done=True 或带 error 的块结束。调用方不取下一个元素时，
  Adapter 不会继续读取上游数据。

Adapter 只持有不可变的 ModelConfig 与凭证，一轮对话用完即弃。
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Tuple

import httpx

from chat_core.domain.exceptions import UpstreamError
from chat_core.domain.models import DEFAULT_TEMPERATURE, ChatMessage, ChatResult, ChatUsage, ModelConfig, StreamChunk
from chat_core.providers.registry import ProviderConfig

# 上游请求超时（秒）；None 表示不限制
DEFAULT_HTTP_TIMEOUT: Optional[float] = 120.0


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。"""

    name: str

    async def chat(self, messages: List[ChatMessage]) -> ChatResult:
        ...

    def stream_chat(self, messages: List[ChatMessage]) -> AsyncIterator[StreamChunk]:
        """执行一次流式对话调用，逐步产出增量。"""

        ...


def sampling_defaults(config: ModelConfig, provider_cfg: ProviderConfig) -> Tuple[float, Optional[int]]:
    """合并 temperature / max_tokens 默认值。"""

    temperature = config.temperature if config.temperature is not None else DEFAULT_TEMPERATURE
    max_tokens = config.max_tokens if config.max_tokens is not None else provider_cfg.default_max_tokens
    return temperature, max_tokens


def format_messages(messages: List[ChatMessage]) -> List[Dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages]


def split_system(messages: List[ChatMessage]) -> Tuple[Optional[str], List[ChatMessage]]:
    """拆出 system 消息；多条 system 用空行拼接为一条。"""

    system_parts = [m.content for m in messages if m.role == "system" and m.content]
    convo = [m for m in messages if m.role != "system"]
    system = "\n\n".join(system_parts) or None
    return system, convo


def drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}


def upstream_error(provider: str, status_code: int, body: str) -> UpstreamError:
    return UpstreamError(
        code="API_ERROR",
        message=f"{provider} API error (HTTP {status_code})",
        body=body,
        upstream_status=status_code,
        provider=provider,
    )


async def ensure_stream_ok(resp: httpx.Response, provider: str) -> None:
    """流式响应非 2xx 时读取完整错误正文并抛出 UpstreamError。"""

    if resp.is_success:
        return
    body = (await resp.aread()).decode("utf-8", errors="replace")
    raise upstream_error(provider, resp.status_code, body)


def error_text(raw: Any) -> str:
    """上游错误帧的 error 字段可能是字符串，也可能是 {message: ...}。"""

    if isinstance(raw, dict):
        return str(raw.get("message") or raw.get("type") or raw)
    return str(raw)


def usage_from_openai(raw: Any) -> Optional[ChatUsage]:
    if not isinstance(raw, dict) or not raw:
        return None
    return ChatUsage(
        prompt_tokens=raw.get("prompt_tokens", 0),
        completion_tokens=raw.get("completion_tokens", 0),
        total_tokens=raw.get("total_tokens", 0),
    )
