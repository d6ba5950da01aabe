"""Anthropic Messages API 适配器。

与 OpenAI 的差异：

- system 提示词不放在 messages 中，而是顶层 ``system`` 字段；
  messages 里只保留 user / assistant 两种角色。
- ``max_tokens`` 必填，默认 4096。
- 认证使用 ``x-api-key`` + ``anthropic-version`` 请求头。
- 流式 SSE 带有事件类型，只有 ``type == "content_block_delta"`` 的帧
  携带文本（``delta.text``），``message_stop`` 表示结束。
"""

from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from chat_core.domain.exceptions import TransportAbort
from chat_core.domain.models import ChatMessage, ChatResult, ChatUsage, ModelConfig, StreamChunk
from chat_core.providers.base import (
    DEFAULT_HTTP_TIMEOUT,
    drop_none,
    ensure_stream_ok,
    error_text,
    sampling_defaults,
    split_system,
    upstream_error,
)
from chat_core.providers.registry import ANTHROPIC_CONFIG
from chat_core.transport.decoder import SSE_DONE, aiter_sse_frames, parse_json_frame

ANTHROPIC_VERSION = "2023-06-01"


def anthropic_delta_text(data: Dict[str, Any]) -> str:
    if data.get("type") != "content_block_delta":
        return ""
    delta = data.get("delta") or {}
    if not isinstance(delta, dict):
        return ""
    return delta.get("text") or ""


def parse_anthropic_response(data: Dict[str, Any]) -> ChatResult:
    # Anthropic 返回 content: [{type: "text", text: "..."}]
    texts: List[str] = []
    for block in data.get("content") or []:
        if isinstance(block, dict) and block.get("type") == "text":
            texts.append(block.get("text") or "")
    usage = None
    usage_raw = data.get("usage") or {}
    if usage_raw:
        prompt = usage_raw.get("input_tokens", 0)
        completion = usage_raw.get("output_tokens", 0)
        usage = ChatUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)
    return ChatResult(content="".join(texts), usage=usage)


async def iter_anthropic_stream(byte_iter: AsyncIterator[bytes]) -> AsyncIterator[StreamChunk]:
    async for frame in aiter_sse_frames(byte_iter):
        if frame == SSE_DONE:
            yield StreamChunk(done=True)
            return
        data = parse_json_frame(frame)
        if data is None:
            continue
        event_type = data.get("type")
        if event_type == "error":
            yield StreamChunk(error=error_text(data.get("error")))
            return
        if event_type == "message_stop":
            yield StreamChunk(done=True)
            return
        content = anthropic_delta_text(data)
        if content:
            yield StreamChunk(content=content)
    yield StreamChunk(done=True)


class AnthropicClient:
    """Anthropic Messages API 客户端。"""

    name = "anthropic"

    def __init__(
        self,
        config: ModelConfig,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_HTTP_TIMEOUT,
    ):
        self._config = config
        self._api_key = api_key
        self._base_url = (base_url or ANTHROPIC_CONFIG.base_url).rstrip("/")
        self._timeout = timeout

    @property
    def config(self) -> ModelConfig:
        return self._config

    def build_payload(self, messages: List[ChatMessage], stream: bool) -> Dict[str, Any]:
        temperature, max_tokens = sampling_defaults(self._config, ANTHROPIC_CONFIG)
        system, convo = split_system(messages)
        payload = drop_none(
            {
                "model": self._config.model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "top_p": self._config.top_p,
                "system": system,
                "messages": [
                    {
                        "role": "assistant" if m.role == "assistant" else "user",
                        "content": m.content,
                    }
                    for m in convo
                ],
            }
        )
        payload["stream"] = stream
        return payload

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    async def chat(self, messages: List[ChatMessage]) -> ChatResult:
        payload = self.build_payload(messages, stream=False)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(f"{self._base_url}/messages", json=payload, headers=self._headers())
        except httpx.RequestError as e:
            raise TransportAbort(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if not resp.is_success:
            raise upstream_error(self.name, resp.status_code, resp.text)
        return parse_anthropic_response(resp.json())

    async def stream_chat(self, messages: List[ChatMessage]) -> AsyncIterator[StreamChunk]:
        payload = self.build_payload(messages, stream=True)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    f"{self._base_url}/messages",
                    json=payload,
                    headers=self._headers(),
                ) as resp:
                    await ensure_stream_ok(resp, self.name)
                    async for chunk in iter_anthropic_stream(resp.aiter_bytes()):
                        yield chunk
        except httpx.RequestError as e:
            raise TransportAbort(code="NETWORK_ERROR", message=str(e), provider=self.name)
