"""流式响应解码：把原始字节流切分成协议帧。

支持两种分帧方式：

- SSE：逐行读取，``data: <payload>`` 行产出 payload 字符串，
  其中 ``[DONE]`` 是流结束哨兵；其余行（注释、event、空行）忽略。
- NDJSON（Ollama 风格）：每行一个 JSON 对象，空行忽略，
  无法解析的行直接跳过。

两种解码器都只在遇到换行后才处理一行，最后一段不完整的行
保留在缓冲区等待下一次读取。
"""

import codecs
import json
from typing import Any, AsyncIterator, Dict, List

from chat_core.infrastructure.logging.logger import logger

SSE_DONE = "[DONE]"


class _LineBuffer:
    def __init__(self) -> None:
        self._buffer = ""

    def push(self, text: str) -> List[str]:
        """追加文本并返回所有完整的行（不含换行符）。"""

        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [line[:-1] if line.endswith("\r") else line for line in lines]

    @property
    def pending(self) -> str:
        return self._buffer


class SSEDecoder:
    """增量 SSE 解码器，每个流一个实例。"""

    def __init__(self) -> None:
        self._lines = _LineBuffer()

    def feed(self, text: str) -> List[str]:
        frames: List[str] = []
        for line in self._lines.push(text):
            if not line.startswith("data:"):
                continue
            payload = line[5:]
            if payload.startswith(" "):
                payload = payload[1:]
            frames.append(payload)
        return frames

    def close(self) -> None:
        if self._lines.pending:
            logger.debug("Dropping unterminated SSE line", extra={"extra": {"size": len(self._lines.pending)}})


class NDJSONDecoder:
    """增量 NDJSON 解码器，只产出 JSON 对象（dict）。"""

    def __init__(self) -> None:
        self._lines = _LineBuffer()

    def feed(self, text: str) -> List[Dict[str, Any]]:
        frames: List[Dict[str, Any]] = []
        for line in self._lines.push(text):
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed NDJSON line")
                continue
            if isinstance(obj, dict):
                frames.append(obj)
        return frames

    def close(self) -> None:
        if self._lines.pending.strip():
            logger.debug("Dropping unterminated NDJSON line", extra={"extra": {"size": len(self._lines.pending)}})


def parse_json_frame(payload: str) -> Dict[str, Any] | None:
    """解析 SSE payload；不是 JSON 对象时返回 None，由调用方跳过。"""

    try:
        obj = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed SSE payload")
        return None
    return obj if isinstance(obj, dict) else None


async def aiter_sse_frames(byte_iter: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """按需从字节流中取出 SSE 帧。

    使用增量 UTF-8 解码，多字节字符被拆在两次读取之间时不会损坏。
    """

    text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    decoder = SSEDecoder()
    async for raw in byte_iter:
        for frame in decoder.feed(text_decoder.decode(raw)):
            yield frame
    for frame in decoder.feed(text_decoder.decode(b"", final=True)):
        yield frame
    decoder.close()


async def aiter_json_frames(byte_iter: AsyncIterator[bytes]) -> AsyncIterator[Dict[str, Any]]:
    text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    decoder = NDJSONDecoder()
    async for raw in byte_iter:
        for frame in decoder.feed(text_decoder.decode(raw)):
            yield frame
    for frame in decoder.feed(text_decoder.decode(b"", final=True)):
        yield frame
    decoder.close()
