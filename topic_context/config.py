"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .types import (
    AssemblerConfig,
    CompactionConfig,
    CostTrackingConfig,
    LLMConfig,
    ProviderConfig,
    RouterConfig,
    SampleLogConfig,
    StorageConfig,
    TopicContextConfig,
)

CONFIG_FILENAMES = [
    "topic-context.yaml",
    "topic-context.yml",
    "topic-context.json",
]

PROVIDER_TYPES = ("openai", "openrouter")


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _parse_provider(name: str, raw: dict[str, Any]) -> ProviderConfig:
    provider_type = raw.get("type", "openrouter" if name == "openrouter" else "openai")
    default_url = "https://openrouter.ai/api/v1" if provider_type == "openrouter" else "https://api.openai.com/v1"
    default_key_env = "OPENROUTER_API_KEY" if provider_type == "openrouter" else f"{name.upper()}_API_KEY"
    return ProviderConfig(
        name=name,
        type=provider_type,
        base_url=raw.get("base_url", default_url),
        api_key_env=raw.get("api_key_env", default_key_env),
        timeout=raw.get("timeout", 60.0),
        provider_route=raw.get("provider_route", ""),
    )


def _build_config(raw: dict[str, Any]) -> TopicContextConfig:
    """Build a TopicContextConfig from a raw dict."""
    # Providers
    providers_raw = raw.get("providers")
    if providers_raw:
        providers = {
            name: _parse_provider(name, pconf if isinstance(pconf, dict) else {})
            for name, pconf in providers_raw.items()
        }
    else:
        providers = {"openrouter": _parse_provider("openrouter", {})}

    llm_raw = raw.get("llm", {})
    llm_config = LLMConfig(
        provider=llm_raw.get("provider", "openrouter"),
        fallbacks=list(llm_raw.get("fallbacks", [])),
    )

    # Router
    router_raw = raw.get("router", {})
    router_config = RouterConfig(
        enabled=router_raw.get("enabled", True),
        model=router_raw.get("model", "openai/gpt-oss-20b"),
        temperature=router_raw.get("temperature", 0.2),
        reasoning_effort=router_raw.get("reasoning_effort", "low"),
        max_attempts=router_raw.get("max_attempts", 2),
        recent_message_limit=router_raw.get("recent_message_limit", 6),
        max_memories=router_raw.get("max_memories", 30),
        prompt_version=router_raw.get("prompt_version", "v_current"),
        default_model=router_raw.get("default_model", "gpt-oss-20b"),
        default_effort=router_raw.get("default_effort", "low"),
        available_memory_types=router_raw.get("available_memory_types"),
    )

    # Assembly
    assembly_raw = raw.get("assembly", {})
    assembler_config = AssemblerConfig(
        max_context_tokens=assembly_raw.get("max_context_tokens", 350_000),
        hard_cap_tokens=assembly_raw.get("hard_cap_tokens", 350_000),
        fallback_token_cap=assembly_raw.get("fallback_token_cap", 200_000),
        fallback_message_limit=assembly_raw.get("fallback_message_limit", 400),
        cross_chat_token_limit=assembly_raw.get("cross_chat_token_limit", 200_000),
        secondary_tail_messages=assembly_raw.get("secondary_tail_messages", 3),
        secondary_tail_chars=assembly_raw.get("secondary_tail_chars", 140),
        max_web_search_summaries=assembly_raw.get("max_web_search_summaries", 3),
        artifact_budget_fraction=assembly_raw.get("artifact_budget_fraction", 0.2),
        max_workers=assembly_raw.get("max_workers", 4),
    )

    # Compaction
    compaction_raw = raw.get("compaction", {})
    compaction_config = CompactionConfig(
        model=compaction_raw.get("model", "openai/gpt-oss-20b"),
        temperature=compaction_raw.get("temperature", 0.2),
    )

    sample_raw = raw.get("sample_log", {})
    sample_log_config = SampleLogConfig(
        enabled=sample_raw.get("enabled", True),
        max_queue=sample_raw.get("max_queue", 256),
    )

    cost_raw = raw.get("cost_tracking", {})
    cost_config = CostTrackingConfig(
        enabled=cost_raw.get("enabled", False),
        pricing=cost_raw.get("pricing", {}),
    )

    storage_raw = raw.get("storage", {})
    storage_config = StorageConfig(
        sqlite_path=storage_raw.get("sqlite_path", ".topiccontext/store.db"),
    )

    return TopicContextConfig(
        version=str(raw.get("version", "0.1")),
        token_counter=raw.get("token_counter", "estimate"),
        storage=storage_config,
        providers=providers,
        llm=llm_config,
        router=router_config,
        assembler=assembler_config,
        compaction=compaction_config,
        sample_log=sample_log_config,
        cost_tracking=cost_config,
    )


def validate_config(config: TopicContextConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors: list[str] = []
    assembler = config.assembler

    for field_name in ("max_context_tokens", "hard_cap_tokens", "fallback_token_cap", "cross_chat_token_limit"):
        if getattr(assembler, field_name) <= 0:
            errors.append(f"assembly.{field_name} must be > 0")

    if assembler.fallback_token_cap > assembler.hard_cap_tokens:
        errors.append(
            f"fallback_token_cap ({assembler.fallback_token_cap}) must be <= "
            f"hard_cap_tokens ({assembler.hard_cap_tokens})"
        )

    if not 0 < assembler.artifact_budget_fraction <= 1:
        errors.append("artifact_budget_fraction must be in (0, 1]")

    if assembler.fallback_message_limit < 1:
        errors.append("fallback_message_limit must be >= 1")

    if config.router.max_attempts < 1:
        errors.append("router.max_attempts must be >= 1")

    for name in [config.llm.provider] + config.llm.fallbacks:
        if name not in config.providers:
            errors.append(f"LLM provider '{name}' not found in providers section")

    for name, provider in config.providers.items():
        if provider.type not in PROVIDER_TYPES:
            errors.append(
                f"Provider '{name}' has unknown type '{provider.type}' "
                f"(expected one of: {', '.join(PROVIDER_TYPES)})"
            )

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> TopicContextConfig:
    """Load config from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        # Return defaults
        return _build_config({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    if path.suffix == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text) or {}

    return _build_config(raw)
