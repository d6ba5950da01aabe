"""对外 SSE 事件编码，与前端读取器约定的格式一致。"""

import json
from typing import Any, Dict

from chat_core.transport.decoder import SSE_DONE

SSE_MEDIA_TYPE = "text/event-stream"
SSE_DONE_EVENT = f"data: {SSE_DONE}\n\n"


def encode_sse_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def encode_content_event(content: str) -> str:
    return encode_sse_event({"content": content})
