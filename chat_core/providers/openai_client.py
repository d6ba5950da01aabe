"""OpenAI Provider 适配器。

- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>
- 流式响应为 SSE，每个 data 行的 JSON 中 choices[0].delta.content 为增量，
  以 ``data: [DONE]`` 结束。

本地 OpenAI 兼容服务（LM Studio 等）复用这里的请求体构造和流解析。
"""

from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from chat_core.domain.exceptions import TransportAbort
from chat_core.domain.models import ChatMessage, ChatResult, ModelConfig, StreamChunk
from chat_core.providers.base import (
    DEFAULT_HTTP_TIMEOUT,
    drop_none,
    ensure_stream_ok,
    error_text,
    format_messages,
    sampling_defaults,
    upstream_error,
    usage_from_openai,
)
from chat_core.providers.registry import OPENAI_CONFIG, ProviderConfig
from chat_core.transport.decoder import SSE_DONE, aiter_sse_frames, parse_json_frame


def build_openai_payload(
    config: ModelConfig,
    messages: List[ChatMessage],
    provider_cfg: ProviderConfig,
    stream: bool,
) -> Dict[str, Any]:
    """构造 chat/completions 请求体，未设置的可选参数不出现在请求中。"""

    temperature, max_tokens = sampling_defaults(config, provider_cfg)
    payload = {
        "model": config.model,
        "messages": format_messages(messages),
        "temperature": temperature,
        "max_tokens": max_tokens,
        "top_p": config.top_p,
        "frequency_penalty": config.frequency_penalty,
        "presence_penalty": config.presence_penalty,
    }
    payload = drop_none(payload)
    payload["stream"] = stream
    return payload


def openai_delta_text(data: Dict[str, Any]) -> str:
    choices = data.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta") or {}
    if not isinstance(delta, dict):
        return ""
    return delta.get("content") or ""


def parse_openai_response(data: Dict[str, Any]) -> ChatResult:
    choices = data.get("choices") or []
    content = ""
    if choices and isinstance(choices[0], dict):
        msg = choices[0].get("message") or {}
        content = msg.get("content") or ""
    return ChatResult(content=content, usage=usage_from_openai(data.get("usage")))


async def iter_openai_stream(byte_iter: AsyncIterator[bytes]) -> AsyncIterator[StreamChunk]:
    """把 OpenAI 风格 SSE 字节流映射为 StreamChunk 序列。"""

    async for frame in aiter_sse_frames(byte_iter):
        if frame == SSE_DONE:
            yield StreamChunk(done=True)
            return
        data = parse_json_frame(frame)
        if data is None:
            continue
        if data.get("error"):
            yield StreamChunk(error=error_text(data["error"]))
            return
        content = openai_delta_text(data)
        if content:
            yield StreamChunk(content=content)
    # 上游未发送 [DONE] 直接断开时也以 done 结束
    yield StreamChunk(done=True)


class OpenAIClient:
    """OpenAI Chat Completions 客户端。"""

    name = "openai"

    def __init__(
        self,
        config: ModelConfig,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_HTTP_TIMEOUT,
    ):
        self._config = config
        self._api_key = api_key
        self._base_url = (base_url or OPENAI_CONFIG.base_url).rstrip("/")
        self._timeout = timeout

    @property
    def config(self) -> ModelConfig:
        return self._config

    def build_payload(self, messages: List[ChatMessage], stream: bool) -> Dict[str, Any]:
        return build_openai_payload(self._config, messages, OPENAI_CONFIG, stream)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def chat(self, messages: List[ChatMessage]) -> ChatResult:
        payload = self.build_payload(messages, stream=False)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.RequestError as e:
            raise TransportAbort(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if not resp.is_success:
            raise upstream_error(self.name, resp.status_code, resp.text)
        return parse_openai_response(resp.json())

    async def stream_chat(self, messages: List[ChatMessage]) -> AsyncIterator[StreamChunk]:
        payload = self.build_payload(messages, stream=True)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                ) as resp:
                    await ensure_stream_ok(resp, self.name)
                    async for chunk in iter_openai_stream(resp.aiter_bytes()):
                        yield chunk
        except httpx.RequestError as e:
            raise TransportAbort(code="NETWORK_ERROR", message=str(e), provider=self.name)
