"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 静态配置 (registry)。
- 提供各厂商的具体实现 (openai_client、anthropic_client、local_client)。
- create_provider：根据显式传入的配置构造 Adapter。
"""

from typing import Optional

from chat_core.domain.exceptions import ConfigurationError, UnsupportedProviderError
from chat_core.domain.models import ModelConfig
from chat_core.providers.anthropic_client import AnthropicClient
from chat_core.providers.base import DEFAULT_HTTP_TIMEOUT, ProviderClient
from chat_core.providers.local_client import LocalClient
from chat_core.providers.openai_client import OpenAIClient
from chat_core.providers.registry import LOCAL_CONFIG, PROVIDER_REGISTRY


def create_provider(
    config: ModelConfig,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    *,
    timeout: Optional[float] = DEFAULT_HTTP_TIMEOUT,
) -> ProviderClient:
    """根据 ModelConfig 创建 Provider 实例。

    纯函数：只做校验与对象构造，不发起任何网络请求。
    base_url 仅用于本地 Provider，未提供时使用本机默认地址。

    Raises:
        ConfigurationError: 托管 Provider 未提供 api_key。
        UnsupportedProviderError: provider 不在已知集合内。
    """

    provider_name = (config.provider or "").strip().lower()
    provider_cfg = PROVIDER_REGISTRY.get(provider_name)
    if provider_cfg is None:
        raise UnsupportedProviderError(
            code="UNSUPPORTED_PROVIDER",
            message=f"Unsupported AI provider: {config.provider}",
            provider=config.provider,
        )
    if provider_cfg.requires_api_key and not api_key:
        raise ConfigurationError(
            code="MISSING_API_KEY",
            message=f"{provider_name} API key is required",
            provider=provider_name,
        )

    if provider_name == "openai":
        return OpenAIClient(config, api_key, timeout=timeout)
    if provider_name == "anthropic":
        return AnthropicClient(config, api_key, timeout=timeout)
    return LocalClient(config, base_url=base_url or LOCAL_CONFIG.base_url, timeout=timeout)


__all__ = [
    "AnthropicClient",
    "LocalClient",
    "OpenAIClient",
    "ProviderClient",
    "create_provider",
]
