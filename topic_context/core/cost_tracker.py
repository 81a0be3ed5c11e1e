"""CostTracker: accumulate token usage and cost estimates for router and compaction calls."""

from __future__ import annotations

import threading

from ..types import CostTrackingConfig, LLMUsage, SessionCostSummary


class CostTracker:
    """Track token usage and estimated costs across calls."""

    def __init__(self, config: CostTrackingConfig | None = None) -> None:
        self.config = config or CostTrackingConfig()
        self._summary = SessionCostSummary()
        self._lock = threading.Lock()

    def log_router(self, usage: LLMUsage, model: str = "", provider: str = "") -> None:
        """Log one decision-router classification call."""
        with self._lock:
            self._summary.total_router_calls += 1
            self._add_usage(usage, model, provider)

    def log_compaction(self, usage: LLMUsage, model: str = "", provider: str = "") -> None:
        """Log one compaction call."""
        with self._lock:
            self._summary.total_compactions += 1
            self._add_usage(usage, model, provider)

    def _add_usage(self, usage: LLMUsage, model: str, provider: str) -> None:
        self._summary.total_input_tokens += usage.input_tokens
        self._summary.total_output_tokens += usage.output_tokens
        self._update_cost(usage.input_tokens, usage.output_tokens, self._pricing_key(model, provider))

    @staticmethod
    def _pricing_key(model: str, provider: str) -> str:
        # Same model is billed differently per upstream route, e.g. "openai/gpt-oss-20b@hyperbolic"
        return f"{model}@{provider}" if provider else model

    def _update_cost(self, input_tokens: int, output_tokens: int, key: str) -> None:
        """Update estimated cost based on pricing config."""
        # Exact match first, then substring match (e.g. "gpt-oss-20b" in "openai/gpt-oss-20b@chutes")
        pricing = self.config.pricing.get(key, {})
        if not pricing:
            key_lower = key.lower()
            for name, val in self.config.pricing.items():
                if name.lower() in key_lower:
                    pricing = val
                    break
        input_rate = pricing.get("input_per_1k", 0.0)
        output_rate = pricing.get("output_per_1k", 0.0)
        self._summary.estimated_cost_usd += (
            (input_tokens / 1000) * input_rate
            + (output_tokens / 1000) * output_rate
        )

    def get_summary(self) -> SessionCostSummary:
        """Return current cost summary."""
        with self._lock:
            return SessionCostSummary(
                total_router_calls=self._summary.total_router_calls,
                total_compactions=self._summary.total_compactions,
                total_input_tokens=self._summary.total_input_tokens,
                total_output_tokens=self._summary.total_output_tokens,
                estimated_cost_usd=self._summary.estimated_cost_usd,
            )
