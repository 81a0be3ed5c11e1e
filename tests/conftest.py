"""Shared fixtures for topic-context tests."""

from __future__ import annotations

import json
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from topic_context.storage.sqlite import SQLiteStore
from topic_context.types import (
    CompactionRecord,
    LLMCallResult,
    LLMProviderError,
    LLMUsage,
    Message,
    Topic,
)


@pytest.fixture
def ts() -> datetime:
    return datetime(2026, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def tmp_store_dir():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def tmp_sqlite_db(tmp_store_dir):
    return tmp_store_dir / "test_store.db"


@pytest.fixture
def store(tmp_sqlite_db):
    s = SQLiteStore(tmp_sqlite_db)
    yield s
    s.close()


class MockLLMCaller:
    """Scripted LLM caller: returns (or raises) queued responses and records calls.

    When the script runs out the last entry repeats.
    """

    def __init__(self, responses: list | None = None, provider: str = "mock"):
        self.responses = list(responses if responses is not None else ["ok"])
        self.provider = provider
        self.calls: list[dict] = []

    def call(
        self,
        messages: list[dict],
        model: str,
        temperature: float = 1.0,
        schema: dict | None = None,
        schema_name: str | None = None,
        enforce_json: bool = False,
    ) -> LLMCallResult:
        self.calls.append({
            "messages": messages,
            "model": model,
            "temperature": temperature,
            "schema": schema,
            "schema_name": schema_name,
            "enforce_json": enforce_json,
        })
        if not self.responses:
            raise LLMProviderError("no scripted response", provider=self.provider)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return LLMCallResult(
            text=item,
            usage=LLMUsage(input_tokens=100, output_tokens=20),
            provider=self.provider,
        )


def labels_json(**labels) -> str:
    """A router response with sensible defaults for omitted label fields."""
    body = {
        "topicAction": "new",
        "primaryTopicId": None,
        "secondaryTopicIds": [],
        "newParentTopicId": None,
        "model": "gpt-oss-20b",
        "effort": "low",
        "memoryTypesToLoad": [],
        "reason": "test",
    }
    body.update(labels)
    return json.dumps({"labels": body})


def seed_topic(
    store: SQLiteStore,
    topic_id: str,
    conversation_id: str,
    turns: list[tuple[str, str]],
    start: datetime,
    label: str | None = None,
    summary: str | None = None,
    token_estimate: int | None = None,
    compacted: bool = False,
    step: timedelta = timedelta(minutes=1),
) -> list[Message]:
    """Insert a topic plus its messages, one *step* apart from *start*."""
    compaction = None
    if compacted:
        compaction = CompactionRecord(
            last_compaction_at=start + step * len(turns),
            summary_layers=[summary] if summary else [],
        )
    store.add_topic(Topic(
        id=topic_id,
        conversation_id=conversation_id,
        label=label or topic_id,
        summary=summary,
        token_estimate=token_estimate,
        compaction=compaction,
    ))
    messages = []
    for i, (role, content) in enumerate(turns):
        msg = Message(
            id=f"{topic_id}-m{i}",
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=start + step * i,
            topic_id=topic_id,
        )
        store.add_message(msg)
        messages.append(msg)
    return messages


def alternating_turns(count: int, chars: int = 40, prefix: str = "msg") -> list[tuple[str, str]]:
    """*count* user/assistant turns, each padded to exactly *chars* characters."""
    turns = []
    for i in range(count):
        text = f"{prefix} {i} "
        turns.append(("user" if i % 2 == 0 else "assistant", (text + "x" * chars)[:chars]))
    return turns
