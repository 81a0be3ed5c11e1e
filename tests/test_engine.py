"""Integration tests for TopicContextEngine over a real SQLite store."""

from __future__ import annotations

from datetime import timedelta

import pytest

from topic_context.config import load_config
from topic_context.engine import TopicContextEngine
from topic_context.storage.sqlite import SQLiteStore
from topic_context.types import Artifact, Message, TopicAction

from conftest import MockLLMCaller, alternating_turns, labels_json, seed_topic


@pytest.fixture
def config(tmp_sqlite_db):
    return load_config(config_dict={"storage": {"sqlite_path": str(tmp_sqlite_db)}})


@pytest.fixture
def engine_factory(config):
    engines = []

    def make(responses=None, store=None):
        engine = TopicContextEngine(config=config, llm=MockLLMCaller(responses or [labels_json()]), store=store)
        engines.append(engine)
        return engine

    yield make
    for engine in engines:
        engine.close()


class TestGatherRouterInput:
    def test_reads_recent_topics_and_artifacts(self, engine_factory, ts):
        engine = engine_factory()
        engine.store.add_conversation("c1", title="Trip planning")
        seed_topic(engine.store, "t1", "c1", alternating_turns(10), ts, label="Flights")
        engine.store.add_artifact(Artifact(
            id="a1", conversation_id="c1", type="doc", title="Itinerary", content="z" * 500,
        ))

        router_input = engine.gather_router_input("c1", "book it", active_topic_id="t1")

        assert [t.content[:5] for t in router_input.recent_messages] == [
            "msg 4", "msg 5", "msg 6", "msg 7", "msg 8", "msg 9",
        ]
        assert [t.id for t in router_input.topics] == ["t1"]
        assert router_input.topics[0].conversation_title == "Trip planning"
        assert router_input.topics[0].is_cross_conversation is False
        assert router_input.artifacts[0].snippet == "z" * 200
        assert router_input.active_topic_id == "t1"

    def test_project_siblings_offered_as_cross_chat(self, engine_factory, ts):
        engine = engine_factory()
        engine.store.add_project("p1", "Work")
        engine.store.add_conversation("c1", title="Today", project_id="p1")
        engine.store.add_conversation("c2", title="Q3 budget", project_id="p1")
        seed_topic(engine.store, "local", "c1", alternating_turns(1), ts)
        seed_topic(engine.store, "budget", "c2", alternating_turns(1), ts)

        topics = {t.id: t for t in engine.gather_router_input("c1", "like last time").topics}

        assert topics["local"].is_cross_conversation is False
        assert topics["local"].conversation_title == "Today"
        assert topics["budget"].is_cross_conversation is True
        assert topics["budget"].conversation_title == "Q3 budget"
        assert topics["budget"].project_id == "p1"


class TestPrepareTurn:
    def test_continue_active_loads_topic(self, engine_factory, ts):
        engine = engine_factory([labels_json(topicAction="continue_active", primaryTopicId="t1")])
        msgs = seed_topic(engine.store, "t1", "c1", alternating_turns(4), ts)

        turn = engine.prepare_turn("c1", "thanks", active_topic_id="t1")

        assert turn.decision.topic_action == TopicAction.CONTINUE_ACTIVE
        assert turn.context.source == "topic"
        assert turn.context.included_message_ids == [m.id for m in msgs]

    def test_new_topic_uses_fallback_context(self, engine_factory, ts):
        engine = engine_factory([labels_json(topicAction="new")])
        seed_topic(engine.store, "t1", "c1", alternating_turns(3), ts)

        turn = engine.prepare_turn("c1", "totally different subject")

        assert turn.decision.topic_action == TopicAction.NEW
        assert turn.context.source == "fallback"
        assert len(turn.context.included_message_ids) == 3

    def test_classifier_down_still_yields_context(self, engine_factory, ts):
        from topic_context.types import LLMProviderError

        engine = engine_factory([LLMProviderError("down", provider="mock")])
        seed_topic(engine.store, "t1", "c1", alternating_turns(2), ts)

        turn = engine.prepare_turn("c1", "continue", active_topic_id="t1")

        assert turn.decision.primary_topic_id == "t1"
        assert turn.context.source == "topic"

    def test_cost_report(self, engine_factory):
        engine = engine_factory([labels_json()])
        engine.prepare_turn("c1", "hello")
        assert engine.get_cost_report().total_router_calls == 1


class TestCompactTopic:
    def test_compact_and_apply(self, engine_factory, ts):
        engine = engine_factory(["Layer one", "Layer two"])
        seed_topic(engine.store, "t1", "c1", alternating_turns(4, chars=40), ts, label="Budget")

        first = engine.compact_topic("t1", apply=True)
        assert first.new_summary_layer == "Layer one"
        assert (first.token_range.start, first.token_range.end) == (0, 40)
        topic = engine.store.get_topic("t1")
        assert topic.is_compacted
        assert topic.compaction.covered_tokens == 40

        assert engine.compact_topic("t1") is None

        engine.store.add_message(Message(
            id="late", conversation_id="c1", role="user", content="w" * 40,
            created_at=ts + timedelta(hours=1), topic_id="t1",
        ))
        second = engine.compact_topic("t1", apply=True)
        assert (second.token_range.start, second.token_range.end) == (40, 50)
        assert engine.store.get_topic("t1").summary == "Layer one\n\nLayer two"

        prompt = engine._llm.calls[-1]["messages"][1]["content"]
        assert "Layer one" in prompt
        assert "1. user: " + "w" * 40 in prompt

    def test_compact_without_apply_leaves_store(self, engine_factory, ts):
        engine = engine_factory(["Layer"])
        seed_topic(engine.store, "t1", "c1", alternating_turns(2), ts)
        assert engine.compact_topic("t1") is not None
        assert engine.store.get_topic("t1").compaction is None

    def test_compact_unknown_topic(self, engine_factory):
        assert engine_factory().compact_topic("ghost") is None

    def test_compact_errors_propagate(self, engine_factory, ts):
        from topic_context.types import LLMProviderError

        engine = engine_factory([LLMProviderError("down", provider="mock")])
        seed_topic(engine.store, "t1", "c1", alternating_turns(2), ts)
        with pytest.raises(LLMProviderError):
            engine.compact_topic("t1")


def test_decision_samples_persisted(config, tmp_sqlite_db):
    store = SQLiteStore(tmp_sqlite_db)
    try:
        engine = TopicContextEngine(config=config, llm=MockLLMCaller([labels_json()]), store=store)
        engine.prepare_turn("c1", "hello")
        engine.close()
        samples = store.get_decision_samples()
        assert len(samples) == 1
        assert samples[0]["input"]["userMessage"] == "hello"
    finally:
        store.close()


def test_sample_log_disabled(tmp_sqlite_db):
    config = load_config(config_dict={
        "storage": {"sqlite_path": str(tmp_sqlite_db)},
        "sample_log": {"enabled": False},
    })
    engine = TopicContextEngine(config=config, llm=MockLLMCaller([labels_json()]))
    try:
        engine.prepare_turn("c1", "hello")
        assert engine.store.get_decision_samples() == []
    finally:
        engine.close()
