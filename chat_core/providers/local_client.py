"""本地模型服务适配器。

根据 base_url 自动选择两种协议之一：

- Ollama（地址包含 ``:11434`` 或 ``ollama``）：POST /api/generate，
  请求体只有单个 ``prompt``（最后一条用户消息）和可选 ``system``；
  响应为逐行 JSON，``response`` 字段为增量，``done: true`` 表示结束。
- OpenAI 兼容服务（LM Studio、vLLM 等）：POST /v1/chat/completions，
  请求体与流格式同 OpenAI。
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
from chat_core.providers.openai_client import build_openai_payload, iter_openai_stream, parse_openai_response
from chat_core.providers.registry import LOCAL_CONFIG
from chat_core.transport.decoder import aiter_json_frames


def is_ollama_url(base_url: str) -> bool:
    url = base_url.lower()
    return ":11434" in url or "ollama" in url


def parse_ollama_response(data: Dict[str, Any]) -> ChatResult:
    usage = None
    if "prompt_eval_count" in data or "eval_count" in data:
        prompt = data.get("prompt_eval_count") or 0
        completion = data.get("eval_count") or 0
        usage = ChatUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)
    return ChatResult(content=data.get("response") or "", usage=usage)


async def iter_ollama_stream(byte_iter: AsyncIterator[bytes]) -> AsyncIterator[StreamChunk]:
    async for frame in aiter_json_frames(byte_iter):
        if frame.get("error"):
            yield StreamChunk(error=error_text(frame["error"]))
            return
        content = frame.get("response") or ""
        if content:
            yield StreamChunk(content=content)
        if frame.get("done"):
            yield StreamChunk(done=True)
            return
    yield StreamChunk(done=True)


class LocalClient:
    """本地模型客户端，无需凭证。"""

    name = "local"

    def __init__(
        self,
        config: ModelConfig,
        base_url: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_HTTP_TIMEOUT,
    ):
        self._config = config
        self._base_url = (base_url or LOCAL_CONFIG.base_url).rstrip("/")
        self._timeout = timeout

    @property
    def config(self) -> ModelConfig:
        return self._config

    @property
    def is_ollama(self) -> bool:
        return is_ollama_url(self._base_url)

    @property
    def endpoint(self) -> str:
        if self.is_ollama:
            return f"{self._base_url}/api/generate"
        return f"{self._base_url}/v1/chat/completions"

    def build_payload(self, messages: List[ChatMessage], stream: bool) -> Dict[str, Any]:
        if not self.is_ollama:
            return build_openai_payload(self._config, messages, LOCAL_CONFIG, stream)

        temperature, max_tokens = sampling_defaults(self._config, LOCAL_CONFIG)
        system, convo = split_system(messages)
        # /api/generate 没有多轮结构，只发送最后一条用户消息
        last_user = next((m.content for m in reversed(convo) if m.role == "user"), "")
        options = drop_none(
            {
                "temperature": temperature,
                "num_predict": max_tokens,
                "top_p": self._config.top_p,
                "frequency_penalty": self._config.frequency_penalty,
                "presence_penalty": self._config.presence_penalty,
            }
        )
        return drop_none(
            {
                "model": self._config.model,
                "prompt": last_user,
                "system": system,
                "stream": stream,
                "options": options,
            }
        )

    async def chat(self, messages: List[ChatMessage]) -> ChatResult:
        payload = self.build_payload(messages, stream=False)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(self.endpoint, json=payload, headers={"Content-Type": "application/json"})
        except httpx.RequestError as e:
            raise TransportAbort(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if not resp.is_success:
            raise upstream_error(self.name, resp.status_code, resp.text)
        data = resp.json()
        if self.is_ollama:
            return parse_ollama_response(data)
        return parse_openai_response(data)

    async def stream_chat(self, messages: List[ChatMessage]) -> AsyncIterator[StreamChunk]:
        payload = self.build_payload(messages, stream=True)
        iter_stream = iter_ollama_stream if self.is_ollama else iter_openai_stream
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    self.endpoint,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                ) as resp:
                    await ensure_stream_ok(resp, self.name)
                    async for chunk in iter_stream(resp.aiter_bytes()):
                        yield chunk
        except httpx.RequestError as e:
            raise TransportAbort(code="NETWORK_ERROR", message=str(e), provider=self.name)
