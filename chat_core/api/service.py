"""对外服务装配。

提供默认的 ChatEngine 单例，供 HTTP 层通过依赖注入获取。
"""

from typing import Optional

from chat_core.agents.chat_engine import ChatEngine
from chat_core.config.settings import settings
from chat_core.domain.workspace import WorkspaceStore
from chat_core.infrastructure.storage.json_store import JsonWorkspaceStore


_store: Optional[WorkspaceStore] = None
_engine: Optional[ChatEngine] = None


def get_default_engine() -> ChatEngine:
    """获取默认的 ChatEngine 实例（单例），存储使用本地 JSON 模式。"""
    global _store, _engine
    if _store is None:
        _store = JsonWorkspaceStore(root=settings.storage_root)
    if _engine is None:
        _engine = ChatEngine(store=_store, cfg=settings)
    return _engine
