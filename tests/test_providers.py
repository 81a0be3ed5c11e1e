"""Tests for the httpx LLM callers."""

from __future__ import annotations

import json

import httpx
import pytest

from topic_context.config import load_config
from topic_context.providers import (
    FallbackLLMCaller,
    OpenAICompatibleProvider,
    OpenRouterProvider,
    build_llm_caller,
)
from topic_context.providers import base as provider_base
from topic_context.types import LLMProviderError

from conftest import MockLLMCaller


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(provider_base.time, "sleep", lambda s: None)


def _ok(text: str = "hello", **extra) -> httpx.Response:
    body = {
        "choices": [{"message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3},
    }
    body.update(extra)
    return httpx.Response(200, json=body)


class Recorder:
    """MockTransport handler replaying scripted responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def payload(self, i: int = 0) -> dict:
        return json.loads(self.requests[i].content)


class TestOpenAICompatible:
    def test_basic_call(self):
        rec = Recorder(_ok("hi there"))
        provider = OpenAICompatibleProvider(
            name="deepinfra", base_url="https://api.example.com/v1/", api_key="sk-test",
            transport=httpx.MockTransport(rec),
        )
        result = provider.call([{"role": "user", "content": "hello"}], model="gpt-oss-20b", temperature=0.2)

        assert result.text == "hi there"
        assert result.usage.input_tokens == 12
        assert result.usage.output_tokens == 3
        assert result.provider == "deepinfra"
        request = rec.requests[0]
        assert str(request.url) == "https://api.example.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        payload = rec.payload()
        assert payload["model"] == "gpt-oss-20b"
        assert payload["temperature"] == 0.2
        assert "response_format" not in payload

    def test_schema_nudge_and_json_mode(self):
        rec = Recorder(_ok("{}"))
        provider = OpenAICompatibleProvider(transport=httpx.MockTransport(rec))
        provider.call(
            [{"role": "user", "content": "classify"}], model="m",
            schema={"type": "object"}, schema_name="decision_router", enforce_json=True,
        )
        payload = rec.payload()
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["messages"][0]["role"] == "system"
        assert payload["messages"][0]["content"] == (
            'You must return a JSON object matching the schema "decision_router": {"type": "object"}'
        )
        assert payload["messages"][1]["content"] == "classify"

    def test_no_auth_header_without_key(self):
        rec = Recorder(_ok())
        OpenAICompatibleProvider(transport=httpx.MockTransport(rec)).call([], model="m")
        assert "Authorization" not in rec.requests[0].headers

    def test_retries_on_5xx(self):
        rec = Recorder(httpx.Response(503, text="busy"), _ok("recovered"))
        provider = OpenAICompatibleProvider(transport=httpx.MockTransport(rec))
        assert provider.call([], model="m").text == "recovered"
        assert len(rec.requests) == 2

    def test_retries_on_transport_error(self):
        rec = Recorder(httpx.ConnectError("refused"), _ok("back"))
        provider = OpenAICompatibleProvider(transport=httpx.MockTransport(rec))
        assert provider.call([], model="m").text == "back"

    def test_gives_up_after_max_retries(self):
        rec = Recorder(httpx.Response(429, text="slow down"))
        provider = OpenAICompatibleProvider(name="p", transport=httpx.MockTransport(rec))
        with pytest.raises(LLMProviderError) as exc:
            provider.call([], model="m")
        assert exc.value.status_code == 429
        assert exc.value.provider == "p"
        assert len(rec.requests) == provider_base.MAX_RETRIES

    def test_client_error_not_retried(self):
        rec = Recorder(httpx.Response(401, text="bad key"))
        provider = OpenAICompatibleProvider(transport=httpx.MockTransport(rec))
        with pytest.raises(LLMProviderError) as exc:
            provider.call([], model="m")
        assert exc.value.status_code == 401
        assert len(rec.requests) == 1

    def test_empty_choices(self):
        rec = Recorder(httpx.Response(200, json={"choices": []}))
        result = OpenAICompatibleProvider(transport=httpx.MockTransport(rec)).call([], model="m")
        assert result.text == ""
        assert result.usage.input_tokens == 0


class TestOpenRouter:
    def test_route_pinned(self):
        rec = Recorder(_ok(provider="Chutes"))
        provider = OpenRouterProvider(provider_route="chutes", transport=httpx.MockTransport(rec))
        result = provider.call([], model="openai/gpt-oss-20b")
        assert rec.payload()["provider"] == {"only": ["chutes"], "allow_fallbacks": False}
        assert result.provider == "chutes"

    def test_unpinned(self):
        rec = Recorder(_ok())
        result = OpenRouterProvider(transport=httpx.MockTransport(rec)).call([], model="m")
        assert "provider" not in rec.payload()
        assert result.provider == "openrouter"


class TestFallbackLLMCaller:
    def test_first_success_wins(self):
        first, second = MockLLMCaller(["a"], provider="one"), MockLLMCaller(["b"], provider="two")
        result = FallbackLLMCaller([first, second]).call([], model="m")
        assert result.text == "a"
        assert second.calls == []

    def test_falls_through_on_error(self):
        first = MockLLMCaller([LLMProviderError("down", provider="one")])
        second = MockLLMCaller(["b"], provider="two")
        result = FallbackLLMCaller([first, second]).call([], model="m", enforce_json=True)
        assert result.provider == "two"
        assert second.calls[0]["enforce_json"] is True

    def test_raises_last_error(self):
        first = MockLLMCaller([LLMProviderError("down", provider="one")])
        second = MockLLMCaller([LLMProviderError("also down", provider="two")])
        with pytest.raises(LLMProviderError, match="also down"):
            FallbackLLMCaller([first, second]).call([], model="m")

    def test_requires_callers(self):
        with pytest.raises(ValueError):
            FallbackLLMCaller([])


class TestBuildLLMCaller:
    def test_single_provider(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or")
        caller = build_llm_caller(load_config(config_dict={}))
        assert isinstance(caller, OpenRouterProvider)
        assert caller.api_key == "sk-or"

    def test_chain(self):
        config = load_config(config_dict={
            "providers": {
                "primary": {"type": "openrouter", "provider_route": "chutes"},
                "backup": {"type": "openai", "base_url": "http://localhost:8000/v1"},
            },
            "llm": {"provider": "primary", "fallbacks": ["backup"]},
        })
        caller = build_llm_caller(config)
        assert isinstance(caller, FallbackLLMCaller)
        assert [c.name for c in caller.callers] == ["primary", "backup"]
        assert caller.callers[0].provider_route == "chutes"

    def test_undefined_provider(self):
        config = load_config(config_dict={"llm": {"provider": "ghost"}})
        with pytest.raises(ValueError, match="ghost"):
            build_llm_caller(config)

    def test_unknown_type_rejected_with_shared_type_list(self):
        from topic_context import config as config_module
        from topic_context import providers

        assert providers.PROVIDER_TYPES is config_module.PROVIDER_TYPES
        config = load_config(config_dict={"providers": {"openrouter": {"type": "grpc"}}})
        with pytest.raises(ValueError, match="Available: openai, openrouter"):
            build_llm_caller(config)
