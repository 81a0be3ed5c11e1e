"""ContextAssembler: build the token-budgeted message list for the main model.

Emitted order (top to bottom in the final prompt):
1. [VERBATIM] - chronological topic messages (stable prefix for prompt caching)
2. [SUMMARIES] - cross-chat notices, then topic / reference summaries
3. [SEARCH] - recent web-search digests
4. [ARTIFACTS] - requested artifacts that fit the artifact allowance

Only store failures escape ``build()``; every other branch degrades to a
smaller context or to the recent-messages fallback.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from ..token_counter import TokenCounter, count_all, estimate_tokens
from ..types import (
    Artifact,
    AssemblerConfig,
    BuildContextResult,
    ContextDebug,
    ContextMessage,
    ConversationMeta,
    Message,
    RouterDecision,
    Topic,
)
from .sanitizer import Sanitizer, sanitize_message
from .store import ContextStore

logger = logging.getLogger(__name__)

WEB_SEARCH_SUMMARY_KEY = "webSearchSummary"
WEB_SEARCH_SOURCES_KEY = "webSearchSummarySources"
WEB_SEARCH_QUERIES_KEY = "webSearchSummaryQueries"
WEB_SEARCH_GENERATED_AT_KEY = "webSearchSummaryGeneratedAt"


@dataclass
class _Entry:
    """A context message plus the stored message id it came from (None for synthetic)."""
    message: ContextMessage
    message_id: str | None = None


@dataclass
class _WebSearchDigest:
    summary: str
    sources: list[tuple[str, str | None]]
    queries: list[str]
    generated_at: str | None
    created_at: str


def trim_to_budget(
    entries: list[_Entry],
    budget: int,
    token_counter: TokenCounter,
) -> list[_Entry]:
    """Keep the newest entries that fit within budget (tail-anchored).

    Walks backwards from the most recent entry and stops at the first one
    that does not fit, so the retained set is always a contiguous suffix.
    """
    if budget <= 0 or not entries:
        return []

    result: list[_Entry] = []
    tokens_used = 0
    for entry in reversed(entries):
        entry_tokens = token_counter(entry.message.content)
        if tokens_used + entry_tokens > budget:
            break
        result.append(entry)
        tokens_used += entry_tokens

    result.reverse()
    return result


class ContextAssembler:
    """Select and trim prior messages, summaries and artifacts into a budgeted prompt."""

    def __init__(
        self,
        store: ContextStore,
        config: AssemblerConfig | None = None,
        token_counter: TokenCounter | None = None,
        sanitizer: Sanitizer | None = None,
    ) -> None:
        self.store = store
        self.config = config or AssemblerConfig()
        self.token_counter = token_counter or estimate_tokens
        self.sanitizer = sanitizer or sanitize_message

    def build(
        self,
        conversation_id: str,
        decision: RouterDecision,
        manual_topic_ids: list[str] | None = None,
        max_context_tokens: int | None = None,
        prefetched_topics: list[Topic] | None = None,
    ) -> BuildContextResult:
        budget = self.config.max_context_tokens if max_context_tokens is None else max_context_tokens
        final_cap = min(budget, self.config.hard_cap_tokens)

        manual = [
            topic_id.strip() for topic_id in (manual_topic_ids or [])
            if isinstance(topic_id, str) and topic_id.strip()
        ]
        if manual:
            primary_id: str | None = manual[0]
            secondary_ids = manual[1:]
        else:
            primary_id = decision.primary_topic_id
            secondary_ids = list(decision.secondary_topic_ids)
        secondary_ids = _dedupe([s for s in secondary_ids if s and s != primary_id])

        requested = ([primary_id] if primary_id else []) + secondary_ids
        topic_map = self._load_topics(requested, primary_id, prefetched_topics)

        primary = topic_map.get(primary_id) if primary_id else None
        if primary is None:
            logger.info(f"No usable primary topic for conversation {conversation_id}; using fallback")
            return self._fallback_result(conversation_id, budget, final_cap)

        involved = _dedupe([conversation_id, primary.conversation_id] + [t.conversation_id for t in topic_map.values()])
        conversation_meta = self.store.get_conversation_meta(involved)

        # Cross-chat guard
        blocked: list[Topic] = []
        if self._is_blocked(primary, conversation_id):
            blocked.append(primary)
            primary = None
        secondaries: list[Topic] = []
        for topic_id in secondary_ids:
            topic = topic_map.get(topic_id)
            if topic is None:
                continue
            if self._is_blocked(topic, conversation_id):
                blocked.append(topic)
            else:
                secondaries.append(topic)

        notices = [
            _Entry(message=self._blocked_notice(t, conversation_meta, conversation_id))
            for t in blocked
        ]
        if blocked:
            logger.info(f"Blocked {len(blocked)} cross-chat topic(s) over the {self.config.cross_chat_token_limit:,}-token limit")

        if primary is None:
            return self._fallback_result(conversation_id, budget, final_cap, notices=notices)

        # Fan-out: all four reads must complete before merging
        artifact_budget = int(budget * self.config.artifact_budget_fraction)
        with ThreadPoolExecutor(max_workers=max(1, self.config.max_workers)) as executor:
            primary_future = executor.submit(
                self.store.get_topic_messages, primary.conversation_id, primary.id,
            )
            tails_future = executor.submit(self._load_secondary_tails, secondaries)
            artifacts_future = executor.submit(
                self._load_artifacts, list(decision.artifacts_to_load), artifact_budget,
            )
            secondary_future = executor.submit(self._load_secondary_messages, secondaries)

            primary_messages = primary_future.result()
            secondary_tails = tails_future.result()
            artifacts = artifacts_future.result()
            secondary_batches = secondary_future.result()

        blocked_ids = {t.id for t in blocked}
        included_topics = _dedupe([primary.id] + [t.id for t in secondaries])
        for artifact in artifacts:
            if artifact.topic_id and artifact.topic_id not in blocked_ids and artifact.topic_id not in included_topics:
                included_topics.append(artifact.topic_id)

        # Candidate pools
        summaries: list[_Entry] = []
        primary_origin = self._topic_origin(primary, conversation_meta, conversation_id)
        if primary.summary and primary.summary.strip():
            summaries.append(_Entry(message=ContextMessage(
                role="assistant",
                content=f"[Topic summary: {primary.label} from {primary_origin}] {primary.summary.strip()}",
            )))
        else:
            logger.debug(f"Primary topic '{primary.label}' has no summary")

        for topic in secondaries:
            parts: list[str] = []
            if topic.summary and topic.summary.strip():
                parts.append(topic.summary.strip())
            tail = secondary_tails.get(topic.id)
            if tail:
                parts.append(f"Recent notes: {tail}")
            if not parts:
                logger.debug(f"Secondary topic '{topic.label}' has no summary content")
                continue
            origin = self._topic_origin(topic, conversation_meta, conversation_id)
            summaries.append(_Entry(message=ContextMessage(
                role="assistant",
                content=f"[Reference summary: {topic.label} from {origin}] {' | '.join(parts)}",
            )))

        all_loaded = list(primary_messages)
        for batch in secondary_batches:
            all_loaded.extend(batch)
        search_summaries = [
            _Entry(message=ContextMessage(role="assistant", content=self._format_web_search(d)))
            for d in self._collect_web_search_summaries(all_loaded)
        ]

        artifact_entries = [
            _Entry(message=ContextMessage(
                role="assistant",
                content=f"[Artifact: {a.title} ({a.type})] {a.content}",
            ))
            for a in artifacts
        ]

        # Compaction-aware filtering: a compacted topic's summary stands in for its history
        any_compacted = primary.is_compacted or any(t.is_compacted for t in secondaries)
        kept: list[Message] = [] if primary.is_compacted else list(primary_messages)
        for topic, batch in zip(secondaries, secondary_batches):
            if topic.is_compacted:
                logger.debug(f"Secondary topic {topic.id} compacted: {len(batch)} messages replaced by summary")
                continue
            kept.extend(batch)
        kept.sort(key=lambda m: m.created_at)

        if any_compacted and not summaries:
            logger.error("Compaction detected but no summaries found for the working set")

        verbatim = [
            _Entry(
                message=self._to_context_message(m, conversation_meta, conversation_id),
                message_id=m.id,
            )
            for m in kept
        ]
        total_topic_tokens = count_all((e.message.content for e in verbatim), self.token_counter)

        cross_chat_notice: _Entry | None = None
        if primary.conversation_id != conversation_id:
            cross_chat_notice = _Entry(message=ContextMessage(
                role="assistant",
                content=(
                    f"[Cross-chat context] The following messages are from {primary_origin}. "
                    "Treat them as prior chat context, not the current conversation."
                ),
            ))

        use_summaries = any_compacted or total_topic_tokens > budget
        trimmed_count = 0
        if use_summaries:
            reserved_entries = notices + summaries + search_summaries + artifact_entries
            reserved = count_all((e.message.content for e in reserved_entries), self.token_counter)
            if cross_chat_notice is not None:
                reserved += self.token_counter(cross_chat_notice.message.content)
            budget_for_messages = max(0, budget - reserved)
            kept_verbatim = trim_to_budget(verbatim, budget_for_messages, self.token_counter)
            trimmed_count = len(verbatim) - len(kept_verbatim)
            logger.info(
                "Summary mode: %d summaries, %d reserved tokens, kept %d/%d verbatim messages",
                len(summaries) + len(search_summaries), reserved, len(kept_verbatim), len(verbatim),
            )
        else:
            kept_verbatim = verbatim
            if not any_compacted:
                summaries = []
            logger.info(f"Full mode: {len(verbatim)} verbatim messages ({total_topic_tokens:,} tokens)")

        conversation_entries: list[_Entry] = []
        if cross_chat_notice is not None and kept_verbatim:
            conversation_entries.append(cross_chat_notice)
        conversation_entries.extend(kept_verbatim)

        summary_entries = notices + summaries
        summary_count = len(summary_entries) + len(search_summaries)
        summary_tokens = sum(
            self.token_counter(e.message.content) for e in summary_entries + search_summaries
        )

        # Notices sit outside the final trim so a blocked topic is always reported
        rest = conversation_entries + summaries + search_summaries + artifact_entries
        notice_tokens = count_all((e.message.content for e in notices), self.token_counter)
        kept = trim_to_budget(rest, max(0, final_cap - notice_tokens), self.token_counter)
        if not kept:
            fallback = self._fallback_result(conversation_id, budget, final_cap, notices=notices)
            fallback.included_topic_ids = included_topics
            fallback.summary_count = summary_count
            fallback.artifact_count = len(artifacts)
            return fallback

        verbatim_kept = max(0, len(conversation_entries) - (len(rest) - len(kept)))
        final = kept[:verbatim_kept] + notices + kept[verbatim_kept:]

        logger.debug(
            "Final context: %d messages (%d verbatim, %d summary, %d artifact)",
            len(final), len(kept_verbatim), summary_count, len(artifacts),
        )
        return BuildContextResult(
            messages=[e.message for e in final],
            included_message_ids=[e.message_id for e in final if e.message_id],
            source="manual" if manual else "topic",
            included_topic_ids=included_topics,
            summary_count=summary_count,
            artifact_count=len(artifacts),
            debug=ContextDebug(
                total_topic_tokens=total_topic_tokens,
                summary_tokens=summary_tokens,
                loaded_message_count=len(kept_verbatim),
                trimmed_message_count=trimmed_count,
                budget=budget,
            ),
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_topics(
        self,
        requested: list[str],
        primary_id: str | None,
        prefetched: list[Topic] | None,
    ) -> dict[str, Topic]:
        topic_map: dict[str, Topic] = {}
        if not requested:
            return topic_map

        wanted = set(requested)
        for topic in prefetched or []:
            if topic.id in wanted:
                topic_map[topic.id] = topic

        missing = [topic_id for topic_id in requested if topic_id not in topic_map]
        if missing:
            for topic in self.store.get_topics(missing):
                topic_map[topic.id] = topic

        if primary_id and primary_id not in topic_map:
            topic = self.store.get_topic(primary_id)
            if topic is not None:
                topic_map[topic.id] = topic
        return topic_map

    def _load_secondary_tails(self, topics: list[Topic]) -> dict[str, str]:
        """Short 'Role: text | Role: text' digests of each topic's last messages."""
        tails: dict[str, str] = {}
        for topic in topics:
            rows = self.store.get_topic_messages(topic.conversation_id, topic.id)
            if not rows:
                continue
            parts: list[str] = []
            for msg in rows[-self.config.secondary_tail_messages:]:
                label = "Assistant" if msg.role == "assistant" else "User"
                snippet = re.sub(r"\s+", " ", self.sanitizer(msg)).strip()[:self.config.secondary_tail_chars]
                if snippet:
                    parts.append(f"{label}: {snippet}")
            if parts:
                tails[topic.id] = " | ".join(parts)
        return tails

    def _load_secondary_messages(self, topics: list[Topic]) -> list[list[Message]]:
        return [self.store.get_topic_messages(t.conversation_id, t.id) for t in topics]

    def _load_artifacts(self, artifact_ids: list[str], token_budget: int) -> list[Artifact]:
        """Greedy fill: skip artifacts that don't fit but keep trying smaller ones."""
        if not artifact_ids or token_budget <= 0:
            return []
        rows = self.store.get_artifacts(artifact_ids)
        order = {artifact_id: i for i, artifact_id in enumerate(artifact_ids)}
        rows.sort(key=lambda a: order.get(a.id, len(order)))

        selected: list[Artifact] = []
        remaining = token_budget
        for artifact in rows:
            tokens = self.token_counter(artifact.content or "")
            if tokens > remaining:
                logger.debug(f"Artifact {artifact.id} skipped ({tokens} tokens > {remaining} remaining)")
                continue
            selected.append(artifact)
            remaining -= tokens
        return selected

    def _fallback_result(
        self,
        conversation_id: str,
        budget: int,
        final_cap: int,
        notices: list[_Entry] | None = None,
    ) -> BuildContextResult:
        """Recent raw messages of the conversation, trimmed from the newest backward."""
        notices = notices or []
        notice_tokens = count_all((e.message.content for e in notices), self.token_counter)
        cap = max(0, min(self.config.fallback_token_cap, budget, final_cap) - notice_tokens)

        recent = self.store.get_recent_messages(conversation_id, self.config.fallback_message_limit)
        entries = [
            _Entry(message=self._to_context_message(m), message_id=m.id)
            for m in recent
        ]
        final = notices + trim_to_budget(entries, cap, self.token_counter)
        return BuildContextResult(
            messages=[e.message for e in final],
            included_message_ids=[e.message_id for e in final if e.message_id],
            source="fallback",
            included_topic_ids=[],
            summary_count=len(notices),
            artifact_count=0,
        )

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def _is_blocked(self, topic: Topic, conversation_id: str) -> bool:
        if topic.conversation_id == conversation_id:
            return False
        if topic.token_estimate is None:
            return False
        return topic.token_estimate > self.config.cross_chat_token_limit

    @staticmethod
    def _conversation_origin(
        meta: dict[str, ConversationMeta], topic_conversation_id: str, conversation_id: str,
    ) -> str:
        if topic_conversation_id == conversation_id:
            return "this chat"
        info = meta.get(topic_conversation_id)
        chat_label = (info.title if info else None) or "another chat"
        if info and info.project_name:
            return f"{chat_label} in project {info.project_name}"
        return chat_label

    def _topic_origin(self, topic: Topic, meta: dict[str, ConversationMeta], conversation_id: str) -> str:
        return self._conversation_origin(meta, topic.conversation_id, conversation_id)

    def _blocked_notice(
        self, topic: Topic, meta: dict[str, ConversationMeta], conversation_id: str,
    ) -> ContextMessage:
        limit_k = self.config.cross_chat_token_limit // 1000
        return ContextMessage(
            role="assistant",
            content=(
                f'[Cross-chat notice] Skipped topic "{topic.label}" from '
                f"{self._topic_origin(topic, meta, conversation_id)} because it exceeds the "
                f"{limit_k}k-token cross-chat limit. Inform the user you could not load it."
            ),
        )

    def _to_context_message(
        self,
        msg: Message,
        meta: dict[str, ConversationMeta] | None = None,
        conversation_id: str | None = None,
    ) -> ContextMessage:
        content = self.sanitizer(msg)
        if meta is not None and conversation_id is not None and msg.conversation_id != conversation_id:
            origin = self._conversation_origin(meta, msg.conversation_id, conversation_id)
            content = f"[From {origin}] {content}"
        return ContextMessage(
            role="assistant" if msg.role == "assistant" else "user",
            content=content,
        )

    def _collect_web_search_summaries(self, messages: list[Message]) -> list[_WebSearchDigest]:
        """The most recent distinct web-search digests from assistant metadata."""
        digests: list[_WebSearchDigest] = []
        for msg in messages:
            if msg.role != "assistant" or not msg.metadata:
                continue
            meta = msg.metadata
            summary = meta.get(WEB_SEARCH_SUMMARY_KEY)
            if not isinstance(summary, str) or not summary.strip():
                continue
            sources: list[tuple[str, str | None]] = []
            for source in meta.get(WEB_SEARCH_SOURCES_KEY) or []:
                if isinstance(source, dict) and isinstance(source.get("url"), str) and source["url"]:
                    title = source.get("title") if isinstance(source.get("title"), str) else None
                    sources.append((source["url"], title))
            queries = [
                q.strip() for q in meta.get(WEB_SEARCH_QUERIES_KEY) or []
                if isinstance(q, str) and q.strip()
            ]
            generated_at = meta.get(WEB_SEARCH_GENERATED_AT_KEY)
            digests.append(_WebSearchDigest(
                summary=summary.strip(),
                sources=sources,
                queries=queries,
                generated_at=generated_at if isinstance(generated_at, str) else None,
                created_at=msg.created_at.isoformat(),
            ))

        digests.sort(key=lambda d: d.created_at)
        # Newest copy of each distinct summary wins
        distinct: list[_WebSearchDigest] = []
        seen: set[str] = set()
        for digest in reversed(digests):
            if digest.summary in seen:
                continue
            seen.add(digest.summary)
            distinct.append(digest)
            if len(distinct) >= self.config.max_web_search_summaries:
                break
        distinct.reverse()
        return distinct

    @staticmethod
    def _format_web_search(digest: _WebSearchDigest) -> str:
        header = (
            f"Web search summary ({digest.generated_at.split('T')[0]}):"
            if digest.generated_at else "Web search summary:"
        )
        lines = [header, digest.summary]
        if digest.queries:
            lines.append(f"Queries: {' | '.join(digest.queries)}")
        if digest.sources:
            lines.append("Sources:\n" + "\n".join(
                f"[{i}] {title or url} - {url}" for i, (url, title) in enumerate(digest.sources, 1)
            ))
        return "\n\n".join(line for line in lines if line.strip())


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result
