"""LLM provider base class with shared retry logic."""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod

import httpx

from ..types import LLMCallResult, LLMProviderError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF = [1.0, 2.0, 4.0]


def schema_nudge(schema: dict, schema_name: str | None) -> dict:
    """System message asking the model to honour *schema*."""
    return {
        "role": "system",
        "content": (
            f'You must return a JSON object matching the schema "{schema_name or "response"}": '
            f"{json.dumps(schema)}"
        ),
    }


class BaseProvider(ABC):
    """Abstract base for LLM providers. Subclasses override hook methods;
    the retry loop in ``call()`` is shared."""

    _timeout: float = 60.0

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if timeout is not None:
            self._timeout = timeout
        self._transport = transport

    # -- hook methods subclasses must implement --

    @abstractmethod
    def _provider_name(self) -> str: ...

    @abstractmethod
    def _get_url(self) -> str: ...

    @abstractmethod
    def _get_headers(self) -> dict: ...

    @abstractmethod
    def _build_payload(
        self, messages: list[dict], model: str, temperature: float, enforce_json: bool,
    ) -> dict: ...

    @abstractmethod
    def _extract_result(self, data: dict) -> LLMCallResult: ...

    # -- shared retry logic --

    def call(
        self,
        messages: list[dict],
        model: str,
        temperature: float = 1.0,
        schema: dict | None = None,
        schema_name: str | None = None,
        enforce_json: bool = False,
    ) -> LLMCallResult:
        """Send a chat request with automatic retry on transient errors."""
        if schema is not None:
            messages = [schema_nudge(schema, schema_name)] + list(messages)

        url = self._get_url()
        headers = self._get_headers()
        payload = self._build_payload(messages, model, temperature, enforce_json)

        last_error: Exception | None = None

        for attempt in range(MAX_RETRIES):
            try:
                with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                    response = client.post(url, headers=headers, json=payload)

                if response.status_code == 200:
                    return self._extract_result(response.json())

                if response.status_code == 429 or response.status_code >= 500:
                    last_error = LLMProviderError(
                        f"HTTP {response.status_code}: {response.text}",
                        provider=self._provider_name(),
                        status_code=response.status_code,
                    )
                    logger.warning(
                        "%s returned %d (attempt %d/%d)",
                        self._provider_name(), response.status_code, attempt + 1, MAX_RETRIES,
                    )
                    if attempt < MAX_RETRIES - 1:
                        time.sleep(RETRY_BACKOFF[attempt])
                    continue

                raise LLMProviderError(
                    f"HTTP {response.status_code}: {response.text}",
                    provider=self._provider_name(),
                    status_code=response.status_code,
                )

            except httpx.HTTPError as e:
                last_error = LLMProviderError(
                    f"HTTP error: {e}",
                    provider=self._provider_name(),
                )
                if attempt < MAX_RETRIES - 1:
                    time.sleep(RETRY_BACKOFF[attempt])
                continue

        raise last_error or LLMProviderError(
            "Max retries exceeded", provider=self._provider_name()
        )


__all__ = ["BaseProvider", "LLMProviderError", "schema_nudge"]
