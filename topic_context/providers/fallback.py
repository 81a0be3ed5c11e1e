"""FallbackLLMCaller: try a chain of LLM callers in order."""

from __future__ import annotations

import logging

from ..types import LLMCallResult, LLMCaller, LLMProviderError

logger = logging.getLogger(__name__)


class FallbackLLMCaller:
    """Call each caller in turn until one succeeds; re-raise the last error."""

    def __init__(self, callers: list[LLMCaller]) -> None:
        if not callers:
            raise ValueError("FallbackLLMCaller needs at least one caller")
        self.callers = list(callers)

    def call(
        self,
        messages: list[dict],
        model: str,
        temperature: float = 1.0,
        schema: dict | None = None,
        schema_name: str | None = None,
        enforce_json: bool = False,
    ) -> LLMCallResult:
        last_error: LLMProviderError | None = None
        for i, caller in enumerate(self.callers):
            try:
                return caller.call(
                    messages=messages,
                    model=model,
                    temperature=temperature,
                    schema=schema,
                    schema_name=schema_name,
                    enforce_json=enforce_json,
                )
            except LLMProviderError as e:
                last_error = e
                if i < len(self.callers) - 1:
                    logger.warning(f"Provider {e.provider} failed ({e}); trying next provider")

        logger.error(f"All {len(self.callers)} LLM providers failed")
        raise last_error
