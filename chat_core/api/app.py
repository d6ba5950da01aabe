"""HTTP 接口。

POST /api/ai/chat 接收一轮对话请求，成功时返回 text/event-stream：

    data: {"content": "<delta>"}\\n\\n
    ...
    data: [DONE]\\n\\n

发送任何字节之前的失败返回 JSON ``{"error": "..."}`` 与非 2xx 状态码。
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chat_core.agents.chat_engine import ChatEngine
from chat_core.api.service import get_default_engine
from chat_core.domain.exceptions import BusinessError, ConfigurationError, TransportAbort, UpstreamError
from chat_core.domain.models import ChatMessage, ChatTurnRequest
from chat_core.infrastructure.logging.logger import logger
from chat_core.transport.sse import SSE_MEDIA_TYPE

router = APIRouter()


class HistoryItem(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequestBody(BaseModel):
    """一轮对话请求，字段名与前端保持 camelCase。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    conversation_id: Optional[str] = None
    project_id: Optional[str] = None
    workspace_id: Optional[str] = None
    message: str = Field(min_length=1)
    history: List[HistoryItem] = Field(default_factory=list)

    def to_turn_request(self) -> ChatTurnRequest:
        return ChatTurnRequest(
            conversation_id=self.conversation_id,
            project_id=self.project_id,
            workspace_id=self.workspace_id,
            message=self.message,
            history=[ChatMessage(role=h.role, content=h.content) for h in self.history],
        )


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.get("/api/health")
async def health() -> dict:
    return {"status": "ok"}


@router.post("/api/ai/chat")
async def chat(body: ChatRequestBody, engine: ChatEngine = Depends(get_default_engine)):
    log_extra = {"conversation_id": body.conversation_id, "workspace_id": body.workspace_id}
    try:
        events = await engine.open_stream(body.to_turn_request())
    except ConfigurationError as e:
        return _error_response(e.message, e.http_status)
    except UpstreamError as e:
        logger.error(
            "AI request failed",
            extra={"extra": {**log_extra, "code": e.code, "upstream_status": e.upstream_status, "body": e.body}},
        )
        return _error_response("AI request failed", e.http_status)
    except TransportAbort as e:
        logger.error("AI provider unreachable", extra={"extra": {**log_extra, "error": e.message}})
        return _error_response(f"AI provider unreachable: {e.message}", e.http_status)
    except BusinessError as e:
        return _error_response(e.message, e.http_status)
    except Exception as e:
        logger.exception("AI chat error", extra={"extra": {**log_extra, "error": str(e)}})
        return _error_response(str(e) or "Internal server error", 500)

    return StreamingResponse(
        events,
        media_type=SSE_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="AI Chat Core")
    app.include_router(router)
    return app


app = create_app()
