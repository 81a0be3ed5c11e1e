"""OpenRouterProvider: OpenRouter with the upstream route pinned."""

from __future__ import annotations

import httpx

from .openai_compatible import OpenAICompatibleProvider


class OpenRouterProvider(OpenAICompatibleProvider):
    """OpenAI-compatible provider that pins one OpenRouter upstream.

    With a route set, OpenRouter is told not to fall back to other upstreams
    so usage can be priced per route.
    """

    def __init__(
        self,
        name: str = "openrouter",
        base_url: str = "https://openrouter.ai/api/v1",
        api_key: str = "",
        provider_route: str = "",
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            name=name, base_url=base_url, api_key=api_key,
            timeout=timeout, transport=transport,
        )
        self.provider_route = provider_route

    def _build_payload(
        self, messages: list[dict], model: str, temperature: float, enforce_json: bool,
    ) -> dict:
        payload = super()._build_payload(messages, model, temperature, enforce_json)
        if self.provider_route:
            payload["provider"] = {"only": [self.provider_route], "allow_fallbacks": False}
        return payload

    def _result_provider(self, data: dict) -> str:
        upstream = data.get("provider")
        if isinstance(upstream, str) and upstream:
            return upstream.lower()
        return self.provider_route or self.name
