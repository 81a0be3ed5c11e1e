"""All dataclasses, Protocols, and type aliases for topic-context."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Protocol, runtime_checkable


# ---------------------------------------------------------------------------
# Stored rows (read-only to the core)
# ---------------------------------------------------------------------------

@dataclass
class CompactionRecord:
    """Compaction bookkeeping persisted alongside a topic."""
    last_compaction_at: datetime | None = None
    summary_layers: list[str] = field(default_factory=list)
    covered_tokens: int = 0  # tokens of history already folded into layers


@dataclass
class Topic:
    id: str
    conversation_id: str
    label: str = ""
    summary: str | None = None
    description: str | None = None
    parent_topic_id: str | None = None
    token_estimate: int | None = None  # estimated size of the full history
    compaction: CompactionRecord | None = None

    @property
    def is_compacted(self) -> bool:
        """A topic is compacted iff it has summary text AND a compaction record."""
        return bool(self.summary and self.summary.strip()) and self.compaction is not None


@dataclass
class TopicCandidate(Topic):
    """A topic visible to the router for this turn, possibly from another chat."""
    conversation_title: str | None = None
    project_id: str | None = None
    is_cross_conversation: bool = False


@dataclass
class Message:
    id: str
    conversation_id: str
    role: str  # "user", "assistant", "system", "tool"
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    topic_id: str | None = None
    metadata: dict | None = None


@dataclass
class Artifact:
    id: str
    conversation_id: str
    type: str = ""
    title: str = ""
    summary: str | None = None
    keywords: list[str] = field(default_factory=list)
    content: str = ""
    topic_id: str | None = None


@dataclass
class ConversationMeta:
    id: str
    title: str | None = None
    project_id: str | None = None
    project_name: str | None = None


# ---------------------------------------------------------------------------
# Decision Router
# ---------------------------------------------------------------------------

class TopicAction(str, Enum):
    CONTINUE_ACTIVE = "continue_active"
    NEW = "new"
    REOPEN_EXISTING = "reopen_existing"


@dataclass
class ChatTurn:
    """Lightweight role/content pair used for router history and compaction windows."""
    role: str
    content: str
    topic_id: str | None = None


@dataclass
class MemorySnippet:
    id: str
    type: str
    title: str
    content: str = ""


@dataclass
class ArtifactCandidate:
    id: str
    conversation_id: str
    type: str = ""
    title: str = ""
    summary: str | None = None
    keywords: list[str] = field(default_factory=list)
    snippet: str = ""
    topic_id: str | None = None


@dataclass
class DecisionRouterInput:
    user_message: str
    current_conversation_id: str
    active_topic_id: str | None = None
    recent_messages: list[ChatTurn] = field(default_factory=list)
    topics: list[TopicCandidate] = field(default_factory=list)
    artifacts: list[ArtifactCandidate] = field(default_factory=list)
    memories: list[MemorySnippet] = field(default_factory=list)
    model_preference: str = "auto"


@dataclass
class RouterDecision:
    topic_action: TopicAction
    primary_topic_id: str | None = None
    secondary_topic_ids: list[str] = field(default_factory=list)
    new_parent_topic_id: str | None = None
    model: str = "gpt-oss-20b"
    effort: str = "low"
    memory_types_to_load: list[str] = field(default_factory=list)
    artifacts_to_load: list[str] = field(default_factory=list)
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "topicAction": self.topic_action.value,
            "primaryTopicId": self.primary_topic_id,
            "secondaryTopicIds": list(self.secondary_topic_ids),
            "newParentTopicId": self.new_parent_topic_id,
            "model": self.model,
            "effort": self.effort,
            "memoryTypesToLoad": list(self.memory_types_to_load),
            "artifactsToLoad": list(self.artifacts_to_load),
            "reason": self.reason,
        }


@dataclass
class DecisionSample:
    """One routing decision captured for offline review."""
    prompt_version: str
    fallback_used: bool
    llm_ms: int | None
    input: dict
    output: RouterDecision
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class DecisionSampleSink(Protocol):
    def record_decision_sample(self, sample: DecisionSample) -> None: ...


# ---------------------------------------------------------------------------
# Context Assembly
# ---------------------------------------------------------------------------

@dataclass
class ContextMessage:
    role: Literal["user", "assistant"]
    content: str
    type: Literal["message"] = "message"


@dataclass
class ContextDebug:
    total_topic_tokens: int = 0
    summary_tokens: int = 0
    loaded_message_count: int = 0
    trimmed_message_count: int = 0
    budget: int = 0


@dataclass
class BuildContextResult:
    messages: list[ContextMessage] = field(default_factory=list)
    included_message_ids: list[str] = field(default_factory=list)
    source: Literal["topic", "manual", "fallback"] = "fallback"
    included_topic_ids: list[str] = field(default_factory=list)
    summary_count: int = 0
    artifact_count: int = 0
    debug: ContextDebug | None = None


@dataclass
class TurnContext:
    decision: RouterDecision
    context: BuildContextResult


# ---------------------------------------------------------------------------
# Compaction
# ---------------------------------------------------------------------------

@dataclass
class CompactionInput:
    topic_label: str
    messages: list[ChatTurn] = field(default_factory=list)
    existing_summary_layers: list[str] = field(default_factory=list)
    topic_description: str | None = None
    start_offset: int = 0


@dataclass
class TokenRange:
    start: int = 0
    end: int = 0


@dataclass
class CompactionOutput:
    new_summary_layer: str
    token_range: TokenRange = field(default_factory=TokenRange)


# ---------------------------------------------------------------------------
# Cost Tracking
# ---------------------------------------------------------------------------

@dataclass
class SessionCostSummary:
    """Running totals for router and compaction calls."""
    total_router_calls: int = 0
    total_compactions: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    estimated_cost_usd: float = 0.0


# ---------------------------------------------------------------------------
# LLM Caller
# ---------------------------------------------------------------------------

@dataclass
class LLMUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class LLMCallResult:
    text: str
    usage: LLMUsage = field(default_factory=LLMUsage)
    provider: str = ""


class LLMProviderError(Exception):
    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


@runtime_checkable
class LLMCaller(Protocol):
    def call(
        self,
        messages: list[dict],
        model: str,
        temperature: float = 1.0,
        schema: dict | None = None,
        schema_name: str | None = None,
        enforce_json: bool = False,
    ) -> LLMCallResult: ...


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class ProviderConfig:
    name: str
    type: str = "openai"  # "openai" or "openrouter"
    base_url: str = "https://openrouter.ai/api/v1"
    api_key_env: str = "OPENROUTER_API_KEY"
    timeout: float = 60.0
    provider_route: str = ""  # openrouter upstream pin, e.g. "chutes"


@dataclass
class LLMConfig:
    provider: str = "openrouter"
    fallbacks: list[str] = field(default_factory=list)


@dataclass
class RouterConfig:
    enabled: bool = True
    model: str = "openai/gpt-oss-20b"
    temperature: float = 0.2
    reasoning_effort: str = "low"  # effort for the classifier call itself
    max_attempts: int = 2
    recent_message_limit: int = 6
    max_memories: int = 30
    prompt_version: str = "v_current"
    default_model: str = "gpt-oss-20b"
    default_effort: str = "low"
    available_memory_types: list[str] | None = None


@dataclass
class AssemblerConfig:
    max_context_tokens: int = 350_000
    hard_cap_tokens: int = 350_000
    fallback_token_cap: int = 200_000
    fallback_message_limit: int = 400
    cross_chat_token_limit: int = 200_000
    secondary_tail_messages: int = 3
    secondary_tail_chars: int = 140
    max_web_search_summaries: int = 3
    artifact_budget_fraction: float = 0.2
    max_workers: int = 4


@dataclass
class CompactionConfig:
    model: str = "openai/gpt-oss-20b"
    temperature: float = 0.2


@dataclass
class SampleLogConfig:
    enabled: bool = True
    max_queue: int = 256


@dataclass
class CostTrackingConfig:
    enabled: bool = False
    pricing: dict[str, dict[str, float]] = field(default_factory=dict)


@dataclass
class StorageConfig:
    sqlite_path: str = ".topiccontext/store.db"


@dataclass
class TopicContextConfig:
    version: str = "0.1"
    token_counter: str = "estimate"
    storage: StorageConfig = field(default_factory=StorageConfig)
    providers: dict[str, ProviderConfig] = field(
        default_factory=lambda: {"openrouter": ProviderConfig(name="openrouter", type="openrouter")}
    )
    llm: LLMConfig = field(default_factory=LLMConfig)
    router: RouterConfig = field(default_factory=RouterConfig)
    assembler: AssemblerConfig = field(default_factory=AssemblerConfig)
    compaction: CompactionConfig = field(default_factory=CompactionConfig)
    sample_log: SampleLogConfig = field(default_factory=SampleLogConfig)
    cost_tracking: CostTrackingConfig = field(default_factory=CostTrackingConfig)
