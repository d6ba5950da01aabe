"""消费端读取器：把 /api/ai/chat 的 SSE 流还原为逐步增长的消息文本。

与 transport.decoder 使用同一套按行缓冲逻辑，数据块在任意字节处
被切开都不会丢失或重复增量。读取过程中出错时，已收到的内容保留，
只在 AssembledMessage.error 上标记失败。
"""

import codecs
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import httpx

from chat_core.domain.models import ChatTurnRequest
from chat_core.infrastructure.logging.logger import logger
from chat_core.transport.decoder import SSE_DONE, SSEDecoder, parse_json_frame

UpdateCallback = Callable[[str], None]

STREAM_INCOMPLETE_ERROR = "Chat stream ended before completion"


@dataclass
class AssembledMessage:
    content: str = ""
    done: bool = False
    error: Optional[str] = None


class ChatStreamReader:
    """增量读取器，每条助手消息一个实例。"""

    def __init__(self, on_update: Optional[UpdateCallback] = None) -> None:
        self._decoder = SSEDecoder()
        self._on_update = on_update
        self.message = AssembledMessage()

    def feed(self, text: str) -> List[str]:
        """处理一段文本，返回其中新增的内容片段。收到 [DONE] 后不再处理。"""

        deltas: List[str] = []
        if self.message.done:
            return deltas
        for frame in self._decoder.feed(text):
            if frame == SSE_DONE:
                self.message.done = True
                break
            data = parse_json_frame(frame)
            content = (data or {}).get("content")
            if not content or not isinstance(content, str):
                continue
            self.message.content += content
            deltas.append(content)
            if self._on_update:
                self._on_update(self.message.content)
        return deltas

    def fail(self, error: str) -> AssembledMessage:
        self.message.error = error
        return self.message


async def read_chat_stream(
    byte_iter: AsyncIterator[bytes],
    on_update: Optional[UpdateCallback] = None,
) -> AssembledMessage:
    """读取完整的 SSE 字节流；收到结束哨兵后立即停止读取。

    流在 [DONE] 之前结束时保留已收到的内容，并在 error 上标记未完成。
    """

    reader = ChatStreamReader(on_update)
    text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    async for raw in byte_iter:
        reader.feed(text_decoder.decode(raw))
        if reader.message.done:
            break
    if not reader.message.done:
        return reader.fail(STREAM_INCOMPLETE_ERROR)
    return reader.message


class ChatStreamClient:
    """调用聊天接口并组装助手回复。"""

    def __init__(self, base_url: str, timeout: Optional[float] = 120.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @staticmethod
    def build_body(request: ChatTurnRequest) -> Dict[str, Any]:
        return {
            "conversationId": request.conversation_id,
            "projectId": request.project_id,
            "workspaceId": request.workspace_id,
            "message": request.message,
            "history": [{"role": m.role, "content": m.content} for m in request.history],
        }

    async def send(self, request: ChatTurnRequest, on_update: Optional[UpdateCallback] = None) -> AssembledMessage:
        reader = ChatStreamReader(on_update)
        text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream("POST", f"{self._base_url}/api/ai/chat", json=self.build_body(request)) as resp:
                    if not resp.is_success:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        logger.error(
                            "Chat request failed",
                            extra={"extra": {"status": resp.status_code, "body": body}},
                        )
                        return reader.fail("Failed to get AI response")
                    async for raw in resp.aiter_bytes():
                        reader.feed(text_decoder.decode(raw))
                        if reader.message.done:
                            break
        except httpx.HTTPError as e:
            logger.error("Chat stream interrupted", extra={"extra": {"error": str(e)}})
            return reader.fail(f"Chat stream interrupted: {e}")
        if not reader.message.done:
            return reader.fail(STREAM_INCOMPLETE_ERROR)
        return reader.message
