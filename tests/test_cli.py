"""Tests for the `topic-context` CLI."""

from __future__ import annotations

import json
import subprocess
import sys
from datetime import datetime, timezone

import pytest
import yaml

from topic_context.storage.sqlite import SQLiteStore

from conftest import alternating_turns, seed_topic


@pytest.fixture()
def tmp_cwd(tmp_path, monkeypatch):
    """Run test in a clean temporary directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture()
def seeded(tmp_cwd):
    """A config file plus a store holding one conversation with one topic."""
    db = tmp_cwd / "store.db"
    (tmp_cwd / "topic-context.yaml").write_text(yaml.dump({
        "storage": {"sqlite_path": str(db)},
        "sample_log": {"enabled": False},
    }))
    store = SQLiteStore(db)
    seed_topic(
        store, "t1", "c1", alternating_turns(4), datetime(2026, 1, 15, tzinfo=timezone.utc),
        label="Garden", token_estimate=40,
    )
    store.close()
    return tmp_cwd


def _run_cli(*args: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "topic_context.cli.main", *args],
        capture_output=True,
        text=True,
    )


class TestInit:
    def test_init_default_creates_config(self, tmp_cwd):
        result = _run_cli("init")
        assert result.returncode == 0
        content = (tmp_cwd / "topic-context.yaml").read_text()
        assert "providers:" in content
        assert "assembly:" in content

    def test_init_refuses_overwrite(self, tmp_cwd):
        (tmp_cwd / "topic-context.yaml").write_text("existing content")
        result = _run_cli("init", "local")
        assert result.returncode != 0
        assert "already exists" in result.stderr
        assert (tmp_cwd / "topic-context.yaml").read_text() == "existing content"

    def test_init_force_overwrites(self, tmp_cwd):
        (tmp_cwd / "topic-context.yaml").write_text("existing content")
        result = _run_cli("init", "local", "--force")
        assert result.returncode == 0
        assert "127.0.0.1:11434" in (tmp_cwd / "topic-context.yaml").read_text()

    def test_init_unknown_preset(self, tmp_cwd):
        result = _run_cli("init", "nonexistent")
        assert result.returncode != 0
        assert "Unknown preset" in result.stderr


class TestPresetsAndConfig:
    def test_presets_list(self, tmp_cwd):
        result = _run_cli("presets", "list")
        assert result.returncode == 0
        assert "default" in result.stdout
        assert "local" in result.stdout

    def test_presets_show(self, tmp_cwd):
        result = _run_cli("presets", "show", "local")
        assert result.returncode == 0
        assert yaml.safe_load(result.stdout)["llm"]["provider"] == "ollama"

    def test_config_validate_ok(self, tmp_cwd):
        _run_cli("init")
        result = _run_cli("config", "validate")
        assert result.returncode == 0
        assert "Config is valid." in result.stdout

    def test_config_validate_errors(self, tmp_cwd):
        bad = tmp_cwd / "bad.yaml"
        bad.write_text(yaml.dump({"router": {"max_attempts": 0}}))
        result = _run_cli("--config", str(bad), "config", "validate")
        assert result.returncode == 1
        assert "max_attempts" in result.stdout


class TestTurnCommands:
    def test_route_without_llm(self, seeded):
        result = _run_cli("route", "-c", "c1", "-m", "thanks", "--active-topic", "t1", "--no-llm")
        assert result.returncode == 0, result.stderr
        decision = json.loads(result.stdout)
        assert decision["topicAction"] == "continue_active"
        assert decision["primaryTopicId"] == "t1"

    def test_context_manual_topic(self, seeded):
        result = _run_cli("context", "-c", "c1", "--topic", "t1")
        assert result.returncode == 0, result.stderr
        payload = json.loads(result.stdout)
        assert payload["source"] == "manual"
        assert payload["includedTopicIds"] == ["t1"]
        assert len(payload["messages"]) == 4

    def test_context_fallback_with_budget(self, seeded):
        result = _run_cli("context", "-c", "c1", "--budget", "20")
        payload = json.loads(result.stdout)
        assert payload["source"] == "fallback"
        assert len(payload["messages"]) == 2

    def test_topics(self, seeded):
        result = _run_cli("topics", "-c", "c1")
        assert result.returncode == 0
        assert "t1" in result.stdout
        assert "Garden" in result.stdout

    def test_no_command_prints_help(self, tmp_cwd):
        result = _run_cli()
        assert result.returncode == 1
        assert "usage" in result.stdout.lower()
