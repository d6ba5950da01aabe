"""传输层：上游字节流分帧与对外 SSE 编码。"""

from chat_core.transport.decoder import (
    SSE_DONE,
    NDJSONDecoder,
    SSEDecoder,
    aiter_json_frames,
    aiter_sse_frames,
    parse_json_frame,
)
from chat_core.transport.sse import SSE_DONE_EVENT, SSE_MEDIA_TYPE, encode_content_event, encode_sse_event

__all__ = [
    "SSE_DONE",
    "SSE_DONE_EVENT",
    "SSE_MEDIA_TYPE",
    "NDJSONDecoder",
    "SSEDecoder",
    "aiter_json_frames",
    "aiter_sse_frames",
    "encode_content_event",
    "encode_sse_event",
    "parse_json_frame",
]
