"""对话引擎核心模块。

负责一轮对话的完整编排：读取工作区 Agent 配置、解析凭证、
拼装消息列表、调用 Provider 的流式接口，并把增量重新编码为对外 SSE 事件。

消息的持久化不在这里处理，由调用方（前端或存储层）负责。
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional
from uuid import uuid4

from chat_core.config.settings import Settings, settings
from chat_core.domain.exceptions import BusinessError, ConfigurationError, UnsupportedProviderError, UpstreamError
from chat_core.domain.models import DEFAULT_TEMPERATURE, ChatMessage, ChatTurnRequest, ModelConfig, StreamChunk
from chat_core.domain.workspace import AgentProfile, MemoryEntry, WorkspaceStore
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import load_default_system_prompt
from chat_core.providers import create_provider
from chat_core.providers.base import DEFAULT_HTTP_TIMEOUT, ProviderClient
from chat_core.providers.registry import get_provider_config
from chat_core.transport.sse import SSE_DONE_EVENT, encode_content_event

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4"
DEFAULT_MAX_TOKENS = 2000


@dataclass
class PreparedTurn:
    """通过全部前置校验、可以直接发起上游请求的一轮对话。"""

    provider: ProviderClient
    model_config: ModelConfig
    messages: List[ChatMessage]
    log_ctx: Dict[str, Any] = field(default_factory=dict)


def render_memory(entries: List[MemoryEntry]) -> str:
    return "\n".join(f"{e.key}: {e.value}" for e in entries)


def assemble_messages(
    system_prompt: str,
    memory_context: str,
    history: List[ChatMessage],
    message: str,
) -> List[ChatMessage]:
    """按固定顺序拼装消息：system（含项目上下文）→ 历史 → 本轮用户消息。

    历史中的 system 消息合并进首条 system，保证最多一条且位于最前。
    """

    system_text = system_prompt
    if memory_context:
        system_text += f"\n\nProject Context:\n{memory_context}"
    system_parts = [system_text]
    convo: List[ChatMessage] = []
    for m in history:
        if m.role == "system":
            if m.content:
                system_parts.append(m.content)
            continue
        convo.append(m)
    return [
        ChatMessage(role="system", content="\n\n".join(system_parts)),
        *convo,
        ChatMessage(role="user", content=message),
    ]


class ChatEngine:
    def __init__(
        self,
        store: WorkspaceStore,
        cfg: Settings = settings,
        provider_factory: Callable[..., ProviderClient] = create_provider,
    ):
        self._store = store
        self._settings = cfg
        self._provider_factory = provider_factory

    # ---- 前置阶段：任何网络请求之前完成 ----

    def resolve_api_key(self, provider_name: str) -> Optional[str]:
        """凭证解析顺序：工作区保存的 Key（最新创建者优先）→ 环境变量。"""

        candidates = [
            k for k in self._store.list_active_api_keys() if k.provider.lower() == provider_name and k.key
        ]
        if candidates:
            return max(candidates, key=lambda k: k.created_at).key
        return getattr(self._settings, f"{provider_name}_api_key", None)

    def build_model_config(self, agent: Optional[AgentProfile]) -> ModelConfig:
        agent_cfg = (agent.config if agent else None) or {}
        provider = (
            (agent.model_provider if agent else None)
            or getattr(self._settings, "default_ai_provider", None)
            or DEFAULT_PROVIDER
        )
        model = (
            (agent.model_name if agent else None)
            or getattr(self._settings, "default_model", None)
            or DEFAULT_MODEL
        )
        temperature = agent_cfg.get("temperature")
        max_tokens = agent_cfg.get("maxTokens")
        return ModelConfig(
            provider=provider.strip().lower(),
            model=model,
            temperature=DEFAULT_TEMPERATURE if temperature is None else float(temperature),
            max_tokens=(
                int(max_tokens)
                if max_tokens is not None
                else getattr(self._settings, "default_max_tokens", DEFAULT_MAX_TOKENS)
            ),
        )

    def prepare_turn(self, request: ChatTurnRequest) -> PreparedTurn:
        """完成前置校验并构造 Adapter。

        Raises:
            UnsupportedProviderError: Agent 配置了未知 Provider。
            ConfigurationError: 托管 Provider 找不到可用凭证。
        """

        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "conversation_id": request.conversation_id,
            "workspace_id": request.workspace_id,
        }
        agent = self._store.get_default_agent(request.workspace_id)
        model_config = self.build_model_config(agent)
        log_ctx.update(provider=model_config.provider, model=model_config.model)

        try:
            provider_cfg = get_provider_config(model_config.provider)
        except KeyError:
            raise UnsupportedProviderError(
                code="UNSUPPORTED_PROVIDER",
                message=f"Unsupported AI provider: {model_config.provider}",
                provider=model_config.provider,
            )

        api_key = None
        if provider_cfg.requires_api_key:
            api_key = self.resolve_api_key(provider_cfg.name)
            if not api_key:
                self._log(logging.WARNING, "Missing API key", log_ctx)
                raise ConfigurationError(
                    code="MISSING_API_KEY",
                    message=(
                        f"No API key found for provider: {provider_cfg.name}. "
                        f"Add one in settings or set {provider_cfg.env_key} in .env"
                    ),
                    provider=provider_cfg.name,
                )

        system_prompt = (agent.system_prompt if agent else "") or load_default_system_prompt()
        memory = self._store.list_memory(request.workspace_id, request.project_id)
        messages = assemble_messages(system_prompt, render_memory(memory), request.history, request.message)

        provider = self._provider_factory(
            model_config,
            api_key,
            getattr(self._settings, "local_llm_base_url", None),
            timeout=getattr(self._settings, "http_timeout", DEFAULT_HTTP_TIMEOUT),
        )
        return PreparedTurn(provider=provider, model_config=model_config, messages=messages, log_ctx=log_ctx)

    # ---- 流式阶段 ----

    async def open_stream(self, request: ChatTurnRequest) -> AsyncIterator[str]:
        """打开一轮对话的对外 SSE 流。

        在返回之前先取到上游的第一个块，因此配置错误、上游非 2xx、
        网络失败都会在发送任何字节前以异常形式抛出，调用方可以返回
        普通的错误响应而不是半截的流。
        """

        turn = self.prepare_turn(request)
        self._log(
            logging.INFO,
            "Calling provider (stream)",
            turn.log_ctx,
            message_count=len(turn.messages),
        )
        upstream = turn.provider.stream_chat(turn.messages)
        try:
            first = await upstream.__anext__()
        except StopAsyncIteration:
            first = StreamChunk(done=True)
        except BusinessError as e:
            self._log(logging.ERROR, "Provider request failed", turn.log_ctx, code=e.code, error=self._diagnostic(e))
            raise
        if first.error is not None:
            await upstream.aclose()
            self._log(logging.ERROR, "Provider stream error", turn.log_ctx, error=first.error)
            raise UpstreamError(code="STREAM_ERROR", message="AI request failed", body=first.error)
        return self._relay(turn, upstream, first)

    async def _relay(
        self,
        turn: PreparedTurn,
        upstream: AsyncIterator[StreamChunk],
        first: StreamChunk,
    ) -> AsyncIterator[str]:
        start_time = time.time()
        delta_count = 0
        chunk = first
        try:
            while True:
                if chunk.error is not None:
                    self._log(logging.ERROR, "Provider stream error", turn.log_ctx, error=chunk.error)
                    raise UpstreamError(code="STREAM_ERROR", message="AI request failed", body=chunk.error)
                if chunk.content:
                    delta_count += 1
                    yield encode_content_event(chunk.content)
                if chunk.done:
                    break
                try:
                    chunk = await upstream.__anext__()
                except StopAsyncIteration:
                    break
            yield SSE_DONE_EVENT
        finally:
            # 调用方中途断开时同样会走到这里，关闭上游请求
            await upstream.aclose()
            self._log(
                logging.INFO,
                "Completed chat turn",
                turn.log_ctx,
                elapsed_seconds=round(time.time() - start_time, 2),
                delta_count=delta_count,
            )

    @staticmethod
    def _diagnostic(error: BusinessError) -> str:
        return getattr(error, "body", "") or error.message

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
