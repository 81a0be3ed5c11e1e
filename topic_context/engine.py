"""TopicContextEngine: main orchestrator wiring routing, assembly and compaction."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import load_config
from .core.assembler import ContextAssembler
from .core.compaction_router import CompactionRouter
from .core.cost_tracker import CostTracker
from .core.decision_router import DecisionRouter
from .core.sample_recorder import DecisionSampleRecorder
from .core.sanitizer import sanitize_message
from .core.store import ContextStore
from .providers import build_llm_caller
from .storage.sqlite import SQLiteStore
from .token_counter import create_token_counter
from .types import (
    ArtifactCandidate,
    BuildContextResult,
    ChatTurn,
    CompactionInput,
    CompactionOutput,
    DecisionRouterInput,
    LLMCaller,
    MemorySnippet,
    RouterDecision,
    SessionCostSummary,
    Topic,
    TopicCandidate,
    TopicContextConfig,
    TurnContext,
)

logger = logging.getLogger(__name__)

ARTIFACT_SNIPPET_CHARS = 200


class TopicContextEngine:
    """Per-turn topic routing and context assembly over a persistent store.

    Usage::

        engine = TopicContextEngine(config_path="topic-context.yaml")
        turn = engine.prepare_turn("conv-1", "how do I rotate the keys?", active_topic_id="t-3")
        send_to_model(turn.context.messages, model=turn.decision.model)
    """

    def __init__(
        self,
        config: TopicContextConfig | None = None,
        config_path: str | Path | None = None,
        llm: LLMCaller | None = None,
        store: ContextStore | None = None,
    ) -> None:
        self.config = config or load_config(config_path)
        self._token_counter = create_token_counter(self.config.token_counter)
        self._owns_store = store is None
        self._store = store if store is not None else SQLiteStore(self.config.storage.sqlite_path)
        self._llm = llm if llm is not None else build_llm_caller(self.config)

        self._init_cost_tracker()
        self._init_sample_recorder()
        self._init_router()
        self._init_assembler()
        self._init_compaction()

    def _init_cost_tracker(self) -> None:
        self._cost_tracker = CostTracker(self.config.cost_tracking)

    def _init_sample_recorder(self) -> None:
        self._sample_recorder: DecisionSampleRecorder | None = None
        if self.config.sample_log.enabled and hasattr(self._store, "record_decision_sample"):
            self._sample_recorder = DecisionSampleRecorder(
                self._store, max_queue=self.config.sample_log.max_queue,
            )

    def _init_router(self) -> None:
        self._router = DecisionRouter(
            llm=self._llm,
            config=self.config.router,
            cost_tracker=self._cost_tracker,
            sample_recorder=self._sample_recorder,
        )

    def _init_assembler(self) -> None:
        self._assembler = ContextAssembler(
            store=self._store,
            config=self.config.assembler,
            token_counter=self._token_counter,
            sanitizer=sanitize_message,
        )

    def _init_compaction(self) -> None:
        self._compaction = CompactionRouter(
            llm=self._llm,
            config=self.config.compaction,
            token_counter=self._token_counter,
            cost_tracker=self._cost_tracker,
        )

    @property
    def store(self) -> ContextStore:
        return self._store

    # ------------------------------------------------------------------
    # Per-turn operations
    # ------------------------------------------------------------------

    def route(self, router_input: DecisionRouterInput, allow_llm: bool = True) -> RouterDecision:
        """Classify a turn. Never raises."""
        return self._router.route(router_input, allow_llm=allow_llm)

    def build_context(
        self,
        conversation_id: str,
        decision: RouterDecision,
        manual_topic_ids: list[str] | None = None,
        max_context_tokens: int | None = None,
        prefetched_topics: list[Topic] | None = None,
    ) -> BuildContextResult:
        """Assemble the main-model context. Store errors propagate."""
        return self._assembler.build(
            conversation_id,
            decision,
            manual_topic_ids=manual_topic_ids,
            max_context_tokens=max_context_tokens,
            prefetched_topics=prefetched_topics,
        )

    def gather_router_input(
        self,
        conversation_id: str,
        user_message: str,
        active_topic_id: str | None = None,
        model_preference: str = "auto",
        memories: list[MemorySnippet] | None = None,
    ) -> DecisionRouterInput:
        """Read recent turns, candidate topics and artifacts for a conversation."""
        recent = self._store.get_recent_messages(
            conversation_id, self.config.router.recent_message_limit,
        )
        # Sibling conversations in the same project contribute cross-chat candidates
        rows = (
            self._store.list_conversation_topics(conversation_id)
            + self._store.list_project_topics(conversation_id)
        )
        involved = list(dict.fromkeys([conversation_id] + [t.conversation_id for t in rows]))
        metas = self._store.get_conversation_meta(involved)
        topics = []
        for t in rows:
            meta = metas.get(t.conversation_id)
            topics.append(TopicCandidate(
                id=t.id,
                conversation_id=t.conversation_id,
                label=t.label,
                summary=t.summary,
                description=t.description,
                parent_topic_id=t.parent_topic_id,
                token_estimate=t.token_estimate,
                compaction=t.compaction,
                conversation_title=meta.title if meta else None,
                project_id=meta.project_id if meta else None,
                is_cross_conversation=t.conversation_id != conversation_id,
            ))
        artifacts = [
            ArtifactCandidate(
                id=a.id,
                conversation_id=a.conversation_id,
                type=a.type,
                title=a.title,
                summary=a.summary,
                keywords=list(a.keywords),
                snippet=(a.content or "")[:ARTIFACT_SNIPPET_CHARS],
                topic_id=a.topic_id,
            )
            for a in self._store.list_conversation_artifacts(conversation_id)
        ]
        return DecisionRouterInput(
            user_message=user_message,
            current_conversation_id=conversation_id,
            active_topic_id=active_topic_id,
            recent_messages=[
                ChatTurn(role=m.role, content=sanitize_message(m), topic_id=m.topic_id)
                for m in recent
            ],
            topics=topics,
            artifacts=artifacts,
            memories=list(memories or [])[:self.config.router.max_memories],
            model_preference=model_preference,
        )

    def prepare_turn(
        self,
        conversation_id: str,
        user_message: str,
        active_topic_id: str | None = None,
        model_preference: str = "auto",
        manual_topic_ids: list[str] | None = None,
        max_context_tokens: int | None = None,
        allow_llm: bool = True,
    ) -> TurnContext:
        """Route the turn, then assemble its context from the chosen topics."""
        router_input = self.gather_router_input(
            conversation_id, user_message,
            active_topic_id=active_topic_id,
            model_preference=model_preference,
        )
        decision = self.route(router_input, allow_llm=allow_llm)
        context = self.build_context(
            conversation_id,
            decision,
            manual_topic_ids=manual_topic_ids,
            max_context_tokens=max_context_tokens,
            prefetched_topics=list(router_input.topics),
        )
        logger.info(
            "Turn prepared: action=%s primary=%s source=%s messages=%d",
            decision.topic_action.value, decision.primary_topic_id,
            context.source, len(context.messages),
        )
        return TurnContext(decision=decision, context=context)

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    def compact_topic(self, topic_id: str, apply: bool = False) -> CompactionOutput | None:
        """Fold messages newer than the topic's last compaction into a new layer.

        Returns None when the topic is unknown or has nothing new to fold.
        """
        topic = self._store.get_topic(topic_id)
        if topic is None:
            logger.warning(f"Cannot compact unknown topic {topic_id}")
            return None

        messages = self._store.get_topic_messages(topic.conversation_id, topic.id)
        compaction = topic.compaction
        if compaction and compaction.last_compaction_at:
            messages = [m for m in messages if m.created_at > compaction.last_compaction_at]
        if not messages:
            logger.info(f"Topic {topic_id} has no new messages to compact")
            return None

        output = self._compaction.compact(CompactionInput(
            topic_label=topic.label,
            messages=[ChatTurn(role=m.role, content=sanitize_message(m)) for m in messages],
            existing_summary_layers=list(compaction.summary_layers) if compaction else [],
            topic_description=topic.description,
            start_offset=compaction.covered_tokens if compaction else 0,
        ))

        if apply:
            if not hasattr(self._store, "apply_compaction"):
                raise TypeError(f"{type(self._store).__name__} cannot persist compaction results")
            self._store.apply_compaction(topic.id, output, compacted_at=messages[-1].created_at)
        return output

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get_cost_report(self) -> SessionCostSummary:
        return self._cost_tracker.get_summary()

    def close(self) -> None:
        """Drain pending decision samples and release the store."""
        if self._sample_recorder is not None:
            self._sample_recorder.close()
        if self._owns_store and hasattr(self._store, "close"):
            self._store.close()
