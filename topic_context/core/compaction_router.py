"""CompactionRouter: fold a topic's new turns into one plain-text summary layer."""

from __future__ import annotations

import logging

from ..token_counter import TokenCounter, count_all, estimate_tokens
from ..types import (
    CompactionConfig,
    CompactionInput,
    CompactionOutput,
    LLMCaller,
    TokenRange,
)
from .cost_tracker import CostTracker

logger = logging.getLogger(__name__)

COMPACTION_SYSTEM_PROMPT = (
    "Summarize the conversation below into a concise summary layer. "
    "You have context of previous summaries from earlier in this conversation. "
    "Your job is to summarize ONLY the new turns provided below, understanding them "
    "in context of what came before. Be comprehensive but concise."
)

COMPACTION_INSTRUCTIONS = """\
Instructions:
- Capture key discussion points, decisions, and outcomes.
- Note user preferences, requirements, or constraints mentioned.
- Highlight important context for future turns.
- Be concise but preserve critical details.
- Output format: plain text summary (no JSON or markdown)."""


class CompactionRouter:
    """Summarize new topic turns on top of the existing summary layers.

    Generation failures are not caught here; the caller owns retry policy.
    """

    def __init__(
        self,
        llm: LLMCaller,
        config: CompactionConfig | None = None,
        token_counter: TokenCounter | None = None,
        cost_tracker: CostTracker | None = None,
    ) -> None:
        self.llm = llm
        self.config = config or CompactionConfig()
        self.token_counter = token_counter or estimate_tokens
        self.cost_tracker = cost_tracker

    def compact(self, compaction_input: CompactionInput) -> CompactionOutput:
        messages = [
            {"role": "system", "content": COMPACTION_SYSTEM_PROMPT},
            {"role": "user", "content": self._build_user_prompt(compaction_input)},
        ]
        result = self.llm.call(
            messages=messages,
            model=self.config.model,
            temperature=self.config.temperature,
            enforce_json=False,
        )
        if self.cost_tracker:
            self.cost_tracker.log_compaction(result.usage, self.config.model, result.provider)

        window_tokens = count_all((turn.content for turn in compaction_input.messages), self.token_counter)
        start = max(0, compaction_input.start_offset)
        logger.info(
            "Compacted topic '%s': %d turns, %d tokens (provider=%s)",
            compaction_input.topic_label, len(compaction_input.messages),
            window_tokens, result.provider or "unknown",
        )
        return CompactionOutput(
            new_summary_layer=(result.text or "").strip(),
            token_range=TokenRange(start=start, end=start + window_tokens),
        )

    @staticmethod
    def _build_user_prompt(compaction_input: CompactionInput) -> str:
        layers = compaction_input.existing_summary_layers
        previous = "\n\n".join(layers) if layers else "None"
        turns = "\n".join(
            f"{i}. {turn.role or 'user'}: {(turn.content or '').strip()}"
            for i, turn in enumerate(compaction_input.messages, 1)
        )

        lines = [f"Topic: {compaction_input.topic_label or 'Untitled topic'}"]
        if compaction_input.topic_description:
            lines.append(f"Description: {compaction_input.topic_description}")
        lines += [
            "",
            "Previous conversation context (already summarized):",
            previous,
            "",
            "New turns to summarize (provide a single summary layer covering these):",
            turns or "No new turns provided.",
            "",
            COMPACTION_INSTRUCTIONS,
        ]
        return "\n".join(lines)
