"""Default preset: hosted OpenRouter routing with a pinned upstream."""

from __future__ import annotations

from .base import Preset, register_preset

DEFAULT_CONFIG: dict = {
    "version": "0.1",
    "token_counter": "estimate",
    "storage": {"sqlite_path": ".topiccontext/store.db"},
    "providers": {
        "openrouter": {
            "type": "openrouter",
            "base_url": "https://openrouter.ai/api/v1",
            "api_key_env": "OPENROUTER_API_KEY",
            "provider_route": "chutes",
        },
        "openrouter-hyperbolic": {
            "type": "openrouter",
            "base_url": "https://openrouter.ai/api/v1",
            "api_key_env": "OPENROUTER_API_KEY",
            "provider_route": "hyperbolic",
        },
    },
    "llm": {"provider": "openrouter", "fallbacks": ["openrouter-hyperbolic"]},
    "router": {
        "enabled": True,
        "model": "openai/gpt-oss-20b",
        "temperature": 0.2,
        "max_attempts": 2,
        "recent_message_limit": 6,
        "default_model": "gpt-oss-20b",
        "default_effort": "low",
    },
    "assembly": {
        "max_context_tokens": 350_000,
        "hard_cap_tokens": 350_000,
        "fallback_token_cap": 200_000,
        "cross_chat_token_limit": 200_000,
        "artifact_budget_fraction": 0.2,
    },
    "compaction": {"model": "openai/gpt-oss-20b", "temperature": 0.2},
    "sample_log": {"enabled": True, "max_queue": 256},
    "cost_tracking": {
        "enabled": True,
        "pricing": {
            "gpt-oss-20b@chutes": {"input_per_1k": 0.00003, "output_per_1k": 0.00014},
            "gpt-oss-20b@hyperbolic": {"input_per_1k": 0.0001, "output_per_1k": 0.0001},
        },
    },
}

DEFAULT_TEMPLATE = """\
# topic-context configuration (preset: default)
version: "0.1"
token_counter: "estimate"

storage:
  sqlite_path: ".topiccontext/store.db"

# ---------------------------------------------------------------------------
# LLM providers: the router and compaction calls go through this chain
# ---------------------------------------------------------------------------

providers:
  openrouter:
    type: "openrouter"
    base_url: "https://openrouter.ai/api/v1"
    api_key_env: "OPENROUTER_API_KEY"
    provider_route: "chutes"
  openrouter-hyperbolic:
    type: "openrouter"
    base_url: "https://openrouter.ai/api/v1"
    api_key_env: "OPENROUTER_API_KEY"
    provider_route: "hyperbolic"

llm:
  provider: "openrouter"
  fallbacks: ["openrouter-hyperbolic"]

# ---------------------------------------------------------------------------
# Decision router
# ---------------------------------------------------------------------------

router:
  enabled: true
  model: "openai/gpt-oss-20b"
  temperature: 0.2
  max_attempts: 2
  recent_message_limit: 6
  default_model: "gpt-oss-20b"
  default_effort: "low"

# ---------------------------------------------------------------------------
# Context assembly
# ---------------------------------------------------------------------------

assembly:
  max_context_tokens: 350000
  hard_cap_tokens: 350000
  fallback_token_cap: 200000
  cross_chat_token_limit: 200000
  artifact_budget_fraction: 0.2

compaction:
  model: "openai/gpt-oss-20b"
  temperature: 0.2

sample_log:
  enabled: true
  max_queue: 256

cost_tracking:
  enabled: true
  pricing:
    gpt-oss-20b@chutes:
      input_per_1k: 0.00003
      output_per_1k: 0.00014
    gpt-oss-20b@hyperbolic:
      input_per_1k: 0.0001
      output_per_1k: 0.0001
"""

default_preset = Preset(
    name="default",
    description="OpenRouter routing (gpt-oss-20b pinned to chutes, hyperbolic fallback), "
                "SQLite storage, 350k context budget",
    config_dict=DEFAULT_CONFIG,
    template=DEFAULT_TEMPLATE,
)

register_preset(default_preset)
