"""Local preset: an OpenAI-compatible server on localhost (Ollama, vLLM)."""

from __future__ import annotations

from .base import Preset, register_preset

LOCAL_CONFIG: dict = {
    "version": "0.1",
    "token_counter": "estimate",
    "storage": {"sqlite_path": ".topiccontext/store.db"},
    "providers": {
        "ollama": {
            "type": "openai",
            "base_url": "http://127.0.0.1:11434/v1",
            "api_key_env": "",
            "timeout": 120.0,
        },
    },
    "llm": {"provider": "ollama", "fallbacks": []},
    "router": {
        "model": "gpt-oss:20b",
        "temperature": 0.2,
        "max_attempts": 2,
    },
    "assembly": {
        "max_context_tokens": 120_000,
        "hard_cap_tokens": 120_000,
        "fallback_token_cap": 60_000,
        "cross_chat_token_limit": 60_000,
    },
    "compaction": {"model": "gpt-oss:20b", "temperature": 0.2},
    "sample_log": {"enabled": True},
    "cost_tracking": {"enabled": False},
}

LOCAL_TEMPLATE = """\
# topic-context configuration (preset: local)
version: "0.1"
token_counter: "estimate"

storage:
  sqlite_path: ".topiccontext/store.db"

providers:
  ollama:
    type: "openai"
    base_url: "http://127.0.0.1:11434/v1"
    api_key_env: ""
    timeout: 120.0

llm:
  provider: "ollama"
  fallbacks: []

router:
  model: "gpt-oss:20b"
  temperature: 0.2
  max_attempts: 2

# Smaller windows for local models
assembly:
  max_context_tokens: 120000
  hard_cap_tokens: 120000
  fallback_token_cap: 60000
  cross_chat_token_limit: 60000

compaction:
  model: "gpt-oss:20b"
  temperature: 0.2

sample_log:
  enabled: true

cost_tracking:
  enabled: false
"""

local_preset = Preset(
    name="local",
    description="Local OpenAI-compatible server (Ollama at 127.0.0.1:11434), "
                "no API key, 120k context budget",
    config_dict=LOCAL_CONFIG,
    template=LOCAL_TEMPLATE,
)

register_preset(local_preset)
