"""DecisionRouter: classify each user turn against active/past topics and pick a model."""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import asdict

from ..types import (
    DecisionRouterInput,
    DecisionSample,
    LLMCaller,
    RouterConfig,
    RouterDecision,
    TopicAction,
)
from .cost_tracker import CostTracker
from .model_config import (
    MODEL_FAMILIES,
    clamp_effort,
    clamp_model,
    is_forced,
    is_known_model,
    resolve_model_config,
)
from .router_labels import (
    ROUTER_OUTPUT_SCHEMA,
    LabelValidationError,
    RouterLabels,
    parse_router_labels,
)
from .sample_recorder import DecisionSampleRecorder

logger = logging.getLogger(__name__)

DECISION_ROUTER_PROMPT = """\
CRITICAL DEFAULT RULE: When there is an active topic, you MUST default to "continue_active" unless the
user message is CLEARLY and EXPLICITLY starting a completely new, unrelated conversation topic. Short
acknowledgments, extensions, follow-ups, and responses that don't introduce new subject matter MUST
continue the active topic.

Step 1: If there is an active topic, check whether userMessage continues, acknowledges, or extends the
recent conversation. These ALWAYS continue the active topic:
- Short acknowledgments: "thanks", "okay", "got it", "sounds good", "perfect", "nice", "cool", "great",
  "I see", "understood", "makes sense", "good to know", "appreciate it".
- Extensions and follow-ups: "and", "also", "what about", "how about", "can you", "could you",
  "tell me more", "explain", "elaborate", "continue", "go on".
- References to recent content: "that", "this", "it", "the above", "the previous", pronouns that point
  at recent messages.
- Questions about the subject just discussed, or anything that builds on the last exchange.
- When in doubt with an active topic, choose continue_active.

Step 2: Only if Step 1 finds NO continuation signal AND there is no active topic (or the message is
clearly unrelated), check whether userMessage matches an existing topic. Reopen the best match (set
newParentTopicId when the new message is narrower than that topic); emit "new" only when no prior topic
captures the intent.
- Use topic labels, summaries, descriptions and artifacts to judge reopen_existing vs new.
- Check artifacts to see whether the user is resuming work that lives elsewhere; link that artifact's
  topic when reopening and list the artifact id in artifactsToLoad.
- Hard rule: if the intent clearly matches an existing topic, do NOT choose "new".

Output: return {{"labels": {{...}}}} with exactly these fields:
  topicAction: "continue_active" | "new" | "reopen_existing"
  primaryTopicId: string | null
  secondaryTopicIds: string[]
  newParentTopicId: string | null
  model: {models}
  effort: "none" | "low" | "medium" | "high" | "xhigh"
  memoryTypesToLoad: string[]
  artifactsToLoad: string[]
  reason: string

Rules:
- Never invent placeholder strings like "none"/"null" for ids.
- If topicAction="new": primaryTopicId, newParentTopicId MUST be null and secondaryTopicIds MUST be empty.
- Topics may include cross-chat items marked is_cross_conversation=true with conversation_title set.
  Prefer current-chat topics unless the user clearly refers to another chat. To use a cross-chat topic,
  choose topicAction="reopen_existing" with that topic id.
- secondaryTopicIds: subset of provided topic ids, excluding the primary. Aim for 0-2; add past-chat
  topics only when strictly necessary. Never add them for greetings or simple follow-ups.
- Model selection:
  * gpt-oss-20b: DEFAULT for most general tasks (reasoning, analysis, extraction, summarization).
  * gpt-5-nano: only for trivial single-step requests (greetings, confirmations).
  * gpt-5-mini: precision tasks, code, strict format adherence.
  * grok-4-1-fast: long flowing dialog, nuanced tone, or content that may trigger safety handling.
  * gpt-5.2: complex multi-step or high-stakes work, large code changes.
  * gpt-5.2-pro: only if the user explicitly asked for it.
  * If modelPreference is not "auto", you MUST return exactly that model.
- Effort is for the downstream reply. Default to low; medium for debugging, non-trivial code, math,
  multi-constraint planning. high/xhigh only when clearly rare and intricate. gpt-5-nano: low or medium
  only. gpt-oss-20b: no xhigh.
- Arrays must be arrays (never null). No extra fields. No markdown.
- reason: a concise (<=12 words) rationale for topicAction/model/effort.
"""


class DecisionRouter:
    """Produce a :class:`RouterDecision` for every turn; never raises."""

    def __init__(
        self,
        llm: LLMCaller | None,
        config: RouterConfig | None = None,
        cost_tracker: CostTracker | None = None,
        sample_recorder: DecisionSampleRecorder | None = None,
    ) -> None:
        self.llm = llm
        self.config = config or RouterConfig()
        self._cost_tracker = cost_tracker
        self._sample_recorder = sample_recorder

    def route(self, router_input: DecisionRouterInput, allow_llm: bool = True) -> RouterDecision:
        total_start = time.monotonic()
        llm_ms: int | None = None
        payload = self._build_input_payload(router_input)
        fallback_used = True

        try:
            if not allow_llm or not self.config.enabled or self.llm is None:
                logger.info("Decision router LLM disabled; using fallback policy")
                decision = self._fallback(router_input)
            else:
                labels, llm_ms = self._classify(router_input, payload)
                if labels is None:
                    logger.warning("Decision router produced no valid labels; using fallback policy")
                    decision = self._fallback(router_input)
                else:
                    decision = self._from_labels(labels, router_input)
                    fallback_used = False
        except Exception as e:
            logger.error(f"Decision routing failed, using fallback: {e}")
            decision = self._fallback(router_input)
            fallback_used = True

        decision = self._enforce(decision, router_input)

        logger.info(
            "Decision router timing: llm_ms=%s total_ms=%d fallback=%s",
            llm_ms, int((time.monotonic() - total_start) * 1000), fallback_used,
        )
        self._record_sample(payload, decision, fallback_used, llm_ms)
        return decision

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _classify(
        self, router_input: DecisionRouterInput, payload: dict,
    ) -> tuple[RouterLabels | None, int | None]:
        """Run up to ``max_attempts`` classifier calls; None when all fail."""
        messages = [
            {"role": "system", "content": self._system_prompt()},
            {"role": "user", "content": self._build_user_prompt(router_input, payload)},
        ]
        llm_ms: int | None = None

        for attempt in range(max(1, self.config.max_attempts)):
            start = time.monotonic()
            try:
                result = self.llm.call(
                    messages=messages,
                    model=self.config.model,
                    temperature=self.config.temperature,
                    schema=ROUTER_OUTPUT_SCHEMA,
                    schema_name="decision_router",
                    enforce_json=True,
                )
            except Exception as e:
                llm_ms = int((time.monotonic() - start) * 1000)
                logger.warning(f"Router attempt {attempt + 1} failed: {e}")
                continue
            llm_ms = int((time.monotonic() - start) * 1000)

            if self._cost_tracker:
                self._cost_tracker.log_router(result.usage, model=self.config.model, provider=result.provider)

            parsed = parse_router_labels(result.text)
            if isinstance(parsed, LabelValidationError):
                logger.warning(
                    "Invalid labels from router (attempt %d, %s): %s",
                    attempt + 1, parsed.kind, parsed.detail[:200],
                )
                continue
            return parsed, llm_ms

        return None, llm_ms

    def _system_prompt(self) -> str:
        models = " | ".join(f'"{m}"' for m in MODEL_FAMILIES)
        return DECISION_ROUTER_PROMPT.format(models=models)

    def _build_input_payload(self, router_input: DecisionRouterInput) -> dict:
        recent = router_input.recent_messages[-self.config.recent_message_limit:] if self.config.recent_message_limit > 0 else []
        return {
            "userMessage": router_input.user_message,
            "recentMessages": [
                {"role": t.role, "content": t.content, "topic_id": t.topic_id} for t in recent
            ],
            "activeTopicId": router_input.active_topic_id,
            "current_conversation_id": router_input.current_conversation_id,
            "modelPreference": router_input.model_preference,
            "memories": [asdict(m) for m in router_input.memories],
            "topics": [
                {
                    "id": t.id,
                    "conversation_id": t.conversation_id,
                    "label": t.label,
                    "summary": t.summary,
                    "description": t.description,
                    "parent_topic_id": t.parent_topic_id,
                    "conversation_title": t.conversation_title,
                    "project_id": t.project_id,
                    "is_cross_conversation": t.is_cross_conversation,
                }
                for t in router_input.topics
            ],
            "artifacts": [asdict(a) for a in router_input.artifacts],
        }

    def _build_user_prompt(self, router_input: DecisionRouterInput, payload: dict) -> str:
        return (
            f"Input JSON:\n{json.dumps({'input': payload}, indent=2, default=str)}\n\n"
            f"Memory summary:\n{self._memory_section(router_input)}\n\n"
            'Return only the "labels" object matching the output schema.'
        )

    def _memory_section(self, router_input: DecisionRouterInput) -> str:
        if not router_input.memories:
            return "No memories."
        lines = []
        for m in router_input.memories[:self.config.max_memories]:
            content = re.sub(r"\s+", " ", m.content or "")[:120]
            lines.append(f"- [{m.type}] {m.title}: {content}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def _fallback(self, router_input: DecisionRouterInput) -> RouterDecision:
        """Deterministic policy: continue the active topic if any, else start a new one."""
        selection = resolve_model_config(
            router_input.model_preference,
            default_model=self.config.default_model,
            default_effort=self.config.default_effort,
        )
        if self.config.available_memory_types is not None:
            memory_types = list(self.config.available_memory_types)
        else:
            memory_types = []
            for m in router_input.memories:
                mtype = (m.type or "").strip()
                if mtype and mtype not in memory_types:
                    memory_types.append(mtype)

        if router_input.active_topic_id:
            return RouterDecision(
                topic_action=TopicAction.CONTINUE_ACTIVE,
                primary_topic_id=router_input.active_topic_id,
                model=selection.model,
                effort=selection.effort,
                memory_types_to_load=memory_types,
                reason="Continuing active topic",
            )
        return RouterDecision(
            topic_action=TopicAction.NEW,
            model=selection.model,
            effort=selection.effort,
            memory_types_to_load=memory_types,
            reason="Starting new topic",
        )

    def _from_labels(self, labels: RouterLabels, router_input: DecisionRouterInput) -> RouterDecision:
        fallback = resolve_model_config(
            router_input.model_preference,
            default_model=self.config.default_model,
            default_effort=self.config.default_effort,
        )
        return RouterDecision(
            topic_action=TopicAction(labels.topic_action),
            primary_topic_id=labels.primary_topic_id,
            secondary_topic_ids=list(labels.secondary_topic_ids),
            new_parent_topic_id=labels.new_parent_topic_id,
            model=labels.model or fallback.model,
            effort=labels.effort or fallback.effort,
            memory_types_to_load=list(labels.memory_types_to_load),
            artifacts_to_load=list(labels.artifacts_to_load),
            reason=labels.reason,
        )

    def _enforce(self, decision: RouterDecision, router_input: DecisionRouterInput) -> RouterDecision:
        """Coerce any decision (classifier or fallback) onto the routing invariants."""
        topic_ids = {t.id for t in router_input.topics}
        artifact_ids = {a.id for a in router_input.artifacts}
        active = router_input.active_topic_id

        action = decision.topic_action
        primary = decision.primary_topic_id
        parent = decision.new_parent_topic_id if decision.new_parent_topic_id in topic_ids else None

        if action == TopicAction.CONTINUE_ACTIVE:
            primary = active
            if not primary:
                action = TopicAction.NEW
        elif action == TopicAction.REOPEN_EXISTING:
            if active and primary == active:
                action = TopicAction.CONTINUE_ACTIVE
                parent = None
            elif not primary or primary not in topic_ids:
                action = TopicAction.NEW

        if action == TopicAction.NEW:
            primary = None
            secondary: list[str] = []
            parent = None
        else:
            secondary = []
            for topic_id in decision.secondary_topic_ids:
                if topic_id in topic_ids and topic_id != primary and topic_id not in secondary:
                    secondary.append(topic_id)

        # Model: an explicit preference always wins; the top tier is never auto-picked.
        preference = router_input.model_preference
        if is_forced(preference):
            model = preference
        else:
            model = decision.model if is_known_model(decision.model) else self.config.default_model
            model = clamp_model(model, preference)
        effort = clamp_effort(model, decision.effort)

        return RouterDecision(
            topic_action=action,
            primary_topic_id=primary,
            secondary_topic_ids=secondary,
            new_parent_topic_id=parent,
            model=model,
            effort=effort,
            memory_types_to_load=list(decision.memory_types_to_load),
            artifacts_to_load=[a for a in decision.artifacts_to_load if a in artifact_ids],
            reason=decision.reason,
        )

    def _record_sample(
        self, payload: dict, decision: RouterDecision, fallback_used: bool, llm_ms: int | None,
    ) -> None:
        if self._sample_recorder is None:
            return
        try:
            self._sample_recorder.submit(DecisionSample(
                prompt_version=self.config.prompt_version,
                fallback_used=fallback_used,
                llm_ms=llm_ms,
                input=payload,
                output=decision,
            ))
        except Exception as e:
            logger.warning(f"Decision sample submit failed: {e}")
