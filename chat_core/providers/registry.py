"""Provider 静态配置。

集中维护每个 Provider 的默认地址、是否需要凭证以及 max_tokens 默认值，
工厂与各 Adapter 都从这里读取，避免在代码里散落常量。
"""

from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的整体配置。

    default_max_tokens 为 None 表示请求体中不带该字段，由模型服务自行决定。
    """

    name: str
    base_url: str
    requires_api_key: bool
    default_max_tokens: Optional[int]
    env_key: Optional[str] = None


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    requires_api_key=True,
    default_max_tokens=4096,
    env_key="OPENAI_API_KEY",
)

ANTHROPIC_CONFIG = ProviderConfig(
    name="anthropic",
    base_url="https://api.anthropic.com/v1",
    requires_api_key=True,
    default_max_tokens=4096,
    env_key="ANTHROPIC_API_KEY",
)

# 本地模型服务（Ollama 默认端口）
LOCAL_CONFIG = ProviderConfig(
    name="local",
    base_url="http://localhost:11434",
    requires_api_key=False,
    default_max_tokens=None,
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "openai": OPENAI_CONFIG,
    "anthropic": ANTHROPIC_CONFIG,
    "local": LOCAL_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = (name or "").strip().lower()
    if key in PROVIDER_REGISTRY:
        return PROVIDER_REGISTRY[key]
    raise KeyError(f"Unknown provider: {name!r}")
