from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol


@dataclass
class AgentProfile:
    """工作区默认 AI Agent 的配置。

    config 与前端保存的结构一致，目前只读取 temperature / maxTokens。
    """

    id: str
    workspace_id: str
    name: str
    system_prompt: str = ""
    model_provider: Optional[str] = None
    model_name: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    is_default: bool = True


@dataclass
class ApiKeyRecord:
    id: str
    provider: str
    key: str
    created_at: datetime
    is_active: bool = True


@dataclass
class MemoryEntry:
    """团队记忆条目。project_id 为空表示工作区级别，对所有项目可见。"""

    workspace_id: str
    key: str
    value: str
    project_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class WorkspaceStore(Protocol):
    def get_default_agent(self, workspace_id: Optional[str]) -> Optional[AgentProfile]:
        ...

    def list_active_api_keys(self) -> List[ApiKeyRecord]:
        ...

    def list_memory(self, workspace_id: Optional[str], project_id: Optional[str] = None) -> List[MemoryEntry]:
        ...
