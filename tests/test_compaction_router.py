"""Tests for CompactionRouter."""

import pytest

from topic_context.core.compaction_router import CompactionRouter
from topic_context.core.cost_tracker import CostTracker
from topic_context.types import (
    ChatTurn,
    CompactionConfig,
    CompactionInput,
    LLMProviderError,
)

from conftest import MockLLMCaller


def _input(**kwargs) -> CompactionInput:
    defaults = dict(
        topic_label="Kitchen remodel",
        messages=[
            ChatTurn(role="user", content="We picked oak cabinets."),
            ChatTurn(role="assistant", content="Noted: oak cabinets, budget $12k."),
        ],
        existing_summary_layers=["Layer one.", "Layer two."],
    )
    defaults.update(kwargs)
    return CompactionInput(**defaults)


def test_returns_trimmed_layer():
    llm = MockLLMCaller(["  The user chose oak cabinets.  \n"])
    output = CompactionRouter(llm).compact(_input())
    assert output.new_summary_layer == "The user chose oak cabinets."


def test_call_is_free_text():
    llm = MockLLMCaller(["summary"])
    CompactionRouter(llm, CompactionConfig(model="openai/gpt-oss-20b", temperature=0.2)).compact(_input())
    call = llm.calls[0]
    assert call["enforce_json"] is False
    assert call["schema"] is None
    assert call["model"] == "openai/gpt-oss-20b"
    assert call["temperature"] == 0.2


def test_prompt_contents():
    llm = MockLLMCaller(["summary"])
    CompactionRouter(llm).compact(_input(topic_description="Renovation planning"))
    system, user = llm.calls[0]["messages"]
    assert "ONLY the new turns" in system["content"]
    assert "Topic: Kitchen remodel" in user["content"]
    assert "Description: Renovation planning" in user["content"]
    assert "Layer one.\n\nLayer two." in user["content"]
    assert "1. user: We picked oak cabinets." in user["content"]
    assert "2. assistant: Noted: oak cabinets, budget $12k." in user["content"]


def test_prompt_without_layers_or_turns():
    llm = MockLLMCaller(["summary"])
    CompactionRouter(llm).compact(_input(messages=[], existing_summary_layers=[], topic_label=""))
    user = llm.calls[0]["messages"][1]["content"]
    assert "Topic: Untitled topic" in user
    assert "already summarized):\nNone" in user
    assert "No new turns provided." in user


def test_token_range_covers_window():
    turns = [ChatTurn(role="user", content="a" * 40), ChatTurn(role="assistant", content="b" * 20)]
    output = CompactionRouter(MockLLMCaller(["s"])).compact(_input(messages=turns))
    assert output.token_range.start == 0
    assert output.token_range.end == 15


def test_token_range_starts_at_offset():
    turns = [ChatTurn(role="user", content="a" * 40)]
    output = CompactionRouter(MockLLMCaller(["s"])).compact(_input(messages=turns, start_offset=500))
    assert output.token_range.start == 500
    assert output.token_range.end == 510


def test_errors_propagate():
    llm = MockLLMCaller([LLMProviderError("upstream down", provider="mock", status_code=503)])
    with pytest.raises(LLMProviderError):
        CompactionRouter(llm).compact(_input())
    assert len(llm.calls) == 1


def test_usage_logged():
    tracker = CostTracker()
    CompactionRouter(MockLLMCaller(["s"]), cost_tracker=tracker).compact(_input())
    summary = tracker.get_summary()
    assert summary.total_compactions == 1
    assert summary.total_output_tokens == 20
