import json
import os
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.workspace import AgentProfile, ApiKeyRecord, MemoryEntry, WorkspaceStore
from chat_core.infrastructure.logging.logger import logger


class JsonWorkspaceStore(WorkspaceStore):
    """本地存储模式：把 Agent、API Key 与团队记忆保存为 JSON 文件。

    目录结构::

        <root>/agents.json
        <root>/api_keys.json
        <root>/memory.json
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    # ---- 读取 ----

    def get_default_agent(self, workspace_id: Optional[str]) -> Optional[AgentProfile]:
        for data in self._read_list("agents.json"):
            if data.get("workspace_id") == workspace_id and data.get("is_default", True):
                return self._to_agent(data)
        return None

    def list_active_api_keys(self) -> List[ApiKeyRecord]:
        """返回启用中的 Key；缺字段或时间格式错误的记录跳过并记录日志。"""

        items: List[ApiKeyRecord] = []
        for data in self._read_list("api_keys.json"):
            if not isinstance(data, dict) or not data.get("is_active", True):
                continue
            try:
                record = ApiKeyRecord(
                    id=data["id"],
                    provider=str(data["provider"]).lower(),
                    key=data["key"],
                    created_at=self._parse_ts(data["created_at"]),
                    is_active=True,
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "Skipping malformed api key record",
                    extra={"extra": {"id": data.get("id"), "error": str(e)}},
                )
                continue
            items.append(record)
        return items

    def list_memory(self, workspace_id: Optional[str], project_id: Optional[str] = None) -> List[MemoryEntry]:
        """返回工作区级记忆，以及 project_id 匹配的项目级记忆。"""

        items: List[MemoryEntry] = []
        for data in self._read_list("memory.json"):
            if data.get("workspace_id") != workspace_id:
                continue
            entry_project = data.get("project_id")
            if entry_project is not None and entry_project != project_id:
                continue
            items.append(self._to_memory(data))
        return items

    # ---- 写入 ----

    def save_agent(self, agent: AgentProfile) -> None:
        agents = [a for a in self._read_list("agents.json") if a.get("id") != agent.id]
        if agent.is_default:
            for a in agents:
                if a.get("workspace_id") == agent.workspace_id:
                    a["is_default"] = False
        agents.append(asdict(agent))
        self._write_list("agents.json", agents)

    def add_api_key(self, provider: str, key: str) -> ApiKeyRecord:
        record = ApiKeyRecord(
            id=f"k-{uuid4().hex}",
            provider=provider.lower(),
            key=key,
            created_at=datetime.now(timezone.utc),
        )
        keys = self._read_list("api_keys.json")
        payload = asdict(record)
        payload["created_at"] = self._format_ts(record.created_at)
        keys.append(payload)
        self._write_list("api_keys.json", keys)
        return record

    def set_memory(
        self,
        workspace_id: str,
        key: str,
        value: str,
        project_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MemoryEntry:
        """写入一条记忆，(workspace_id, project_id, key) 相同则覆盖。"""

        entry = MemoryEntry(
            workspace_id=workspace_id,
            key=key,
            value=value,
            project_id=project_id,
            metadata=metadata or {},
        )
        entries = [
            e
            for e in self._read_list("memory.json")
            if not self._same_memory_slot(e, workspace_id, project_id, key)
        ]
        entries.append(asdict(entry))
        self._write_list("memory.json", entries)
        return entry

    def delete_memory(self, workspace_id: str, key: str, project_id: Optional[str] = None) -> None:
        entries = self._read_list("memory.json")
        kept = [e for e in entries if not self._same_memory_slot(e, workspace_id, project_id, key)]
        if len(kept) == len(entries):
            raise BusinessError(code="MEMORY_NOT_FOUND", message=key)
        self._write_list("memory.json", kept)

    # ---- 内部 ----

    @staticmethod
    def _same_memory_slot(data: Dict[str, Any], workspace_id: str, project_id: Optional[str], key: str) -> bool:
        return (
            data.get("workspace_id") == workspace_id
            and data.get("project_id") == project_id
            and data.get("key") == key
        )

    def _read_list(self, name: str) -> List[Dict[str, Any]]:
        path = self._root / name
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        if not isinstance(data, list):
            raise BusinessError(code="STORE_READ_ERROR", message=f"{name} is not a list")
        return data

    def _write_list(self, name: str, items: List[Dict[str, Any]]) -> None:
        path = self._root / name
        tmp_path = self._root / f"{name}.{uuid4().hex}.tmp"
        try:
            tmp_path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _format_ts(ts: datetime) -> str:
        return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

    @staticmethod
    def _parse_ts(raw: str) -> datetime:
        ts = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        # 无时区的时间按 UTC 处理
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts

    @staticmethod
    def _to_agent(data: Dict[str, Any]) -> AgentProfile:
        return AgentProfile(
            id=data["id"],
            workspace_id=data["workspace_id"],
            name=data.get("name") or "",
            system_prompt=data.get("system_prompt") or "",
            model_provider=data.get("model_provider"),
            model_name=data.get("model_name"),
            config=data.get("config") or {},
            is_default=bool(data.get("is_default", True)),
        )

    @staticmethod
    def _to_memory(data: Dict[str, Any]) -> MemoryEntry:
        return MemoryEntry(
            workspace_id=data["workspace_id"],
            key=data["key"],
            value=data.get("value") or "",
            project_id=data.get("project_id"),
            metadata=data.get("metadata") or {},
        )
