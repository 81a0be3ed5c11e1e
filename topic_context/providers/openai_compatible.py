"""OpenAICompatibleProvider: any server exposing /chat/completions via httpx.

Works with OpenAI, DeepInfra, vLLM, Ollama or LM Studio.
"""

from __future__ import annotations

import httpx

from ..types import LLMCallResult, LLMUsage
from .base import BaseProvider


class OpenAICompatibleProvider(BaseProvider):
    """LLM provider using any OpenAI-compatible chat completions API."""

    def __init__(
        self,
        name: str = "openai",
        base_url: str = "https://api.openai.com/v1",
        api_key: str = "",
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    def _provider_name(self) -> str:
        return self.name

    def _get_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _get_headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_payload(
        self, messages: list[dict], model: str, temperature: float, enforce_json: bool,
    ) -> dict:
        payload: dict = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if enforce_json:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _extract_result(self, data: dict) -> LLMCallResult:
        choices = data.get("choices") or []
        text = ""
        if choices:
            text = (choices[0].get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}
        return LLMCallResult(
            text=text,
            usage=LLMUsage(
                input_tokens=usage.get("prompt_tokens", 0) or 0,
                output_tokens=usage.get("completion_tokens", 0) or 0,
            ),
            provider=self._result_provider(data),
        )

    def _result_provider(self, data: dict) -> str:
        return self.name
