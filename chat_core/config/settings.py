"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CORE_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """进程级配置。

    这里只保存“默认值”和环境级凭证；每次对话实际使用的 provider/model
    由 ChatEngine 结合工作区 Agent 配置显式传给 create_provider。
    """

    # ---- Provider 选择 ----
    default_ai_provider: str = Field(
        default="openai",
        description="工作区未配置 Agent 时使用的 Provider：openai / anthropic / local",
    )
    default_model: str = Field(default="gpt-4", description="工作区未配置 Agent 时使用的模型名")
    default_max_tokens: int = Field(default=2000, ge=1, description="Agent 未指定 maxTokens 时的默认值")

    # ---- 环境级兜底凭证 ----
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API 密钥")

    # ---- 本地模型服务 ----
    local_llm_base_url: str = Field(
        default="http://localhost:11434",
        description="本地模型服务地址（Ollama 或 OpenAI 兼容服务）",
    )

    http_timeout: Optional[float] = Field(
        default=120.0,
        ge=1.0,
        description="上游 HTTP 超时时间（秒），为空表示不限制",
    )
    storage_root: str = Field(default=".storage", description="本地存储模式的数据目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别，设为 DEBUG 时记录被跳过的流帧")
    log_redact_content: bool = Field(default=False, description="是否截断日志内容")

    host: str = Field(default="127.0.0.1", description="HTTP 服务监听地址")
    port: int = Field(default=8000, description="HTTP 服务端口")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key", "anthropic_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v or None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
