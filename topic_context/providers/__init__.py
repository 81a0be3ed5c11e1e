"""LLM callers and the factory that wires them from configuration."""

from __future__ import annotations

import os

import httpx

from ..config import PROVIDER_TYPES
from ..types import LLMCaller, ProviderConfig, TopicContextConfig
from .base import BaseProvider, LLMProviderError
from .fallback import FallbackLLMCaller
from .openai_compatible import OpenAICompatibleProvider
from .openrouter import OpenRouterProvider


def build_provider(
    provider_config: ProviderConfig,
    transport: httpx.BaseTransport | None = None,
) -> BaseProvider:
    """Instantiate one provider; the API key is read from its env var."""
    api_key = os.environ.get(provider_config.api_key_env, "") if provider_config.api_key_env else ""
    if provider_config.type == "openrouter":
        return OpenRouterProvider(
            name=provider_config.name,
            base_url=provider_config.base_url,
            api_key=api_key,
            provider_route=provider_config.provider_route,
            timeout=provider_config.timeout,
            transport=transport,
        )
    if provider_config.type == "openai":
        return OpenAICompatibleProvider(
            name=provider_config.name,
            base_url=provider_config.base_url,
            api_key=api_key,
            timeout=provider_config.timeout,
            transport=transport,
        )
    raise ValueError(
        f"Unknown provider type '{provider_config.type}' for '{provider_config.name}'. "
        f"Available: {', '.join(PROVIDER_TYPES)}"
    )

def build_llm_caller(
    config: TopicContextConfig,
    transport: httpx.BaseTransport | None = None,
) -> LLMCaller:
    """Build the configured primary provider plus its fallback chain."""
    names = [config.llm.provider] + [n for n in config.llm.fallbacks if n != config.llm.provider]
    callers: list[LLMCaller] = []
    for name in names:
        provider_config = config.providers.get(name)
        if provider_config is None:
            raise ValueError(f"LLM provider '{name}' is not defined under 'providers'")
        callers.append(build_provider(provider_config, transport=transport))
    if len(callers) == 1:
        return callers[0]
    return FallbackLLMCaller(callers)

__all__ = [
    "BaseProvider",
    "FallbackLLMCaller",
    "LLMProviderError",
    "OpenAICompatibleProvider",
    "OpenRouterProvider",
    "PROVIDER_TYPES",
    "build_llm_caller",
    "build_provider",
]
