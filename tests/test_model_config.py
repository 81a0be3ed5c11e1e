"""Tests for the generation model catalogue."""

import pytest

from topic_context.core.model_config import (
    clamp_effort,
    clamp_model,
    is_forced,
    resolve_model_config,
)


class TestClampEffort:
    def test_supported_effort_unchanged(self):
        assert clamp_effort("gpt-oss-20b", "high") == "high"

    def test_nano_high_clamped_to_medium(self):
        assert clamp_effort("gpt-5-nano", "high") == "medium"

    def test_nano_none_clamped_to_low(self):
        assert clamp_effort("gpt-5-nano", "none") == "low"

    def test_oss_xhigh_clamped_to_high(self):
        assert clamp_effort("gpt-oss-20b", "xhigh") == "high"

    def test_unrestricted_model(self):
        assert clamp_effort("gpt-5.2", "xhigh") == "xhigh"


class TestClampModel:
    def test_top_tier_clamped_when_not_requested(self):
        assert clamp_model("gpt-5.2-pro", "auto") == "gpt-5.2"

    def test_top_tier_kept_when_requested(self):
        assert clamp_model("gpt-5.2-pro", "gpt-5.2-pro") == "gpt-5.2-pro"

    def test_other_models_unchanged(self):
        assert clamp_model("gpt-5-mini", None) == "gpt-5-mini"


@pytest.mark.parametrize("preference,expected", [
    ("auto", False),
    (None, False),
    ("", False),
    ("gpt-5-mini", True),
    ("not-a-model", False),
])
def test_is_forced(preference, expected):
    assert is_forced(preference) is expected


class TestResolveModelConfig:
    def test_auto_uses_defaults(self):
        selection = resolve_model_config("auto")
        assert selection.model == "gpt-oss-20b"
        assert selection.effort == "low"

    def test_forced_model_uses_its_default_effort(self):
        selection = resolve_model_config("gpt-5.2")
        assert selection.model == "gpt-5.2"
        assert selection.effort == "medium"

    def test_unknown_default_model_replaced(self):
        selection = resolve_model_config("auto", default_model="mystery")
        assert selection.model == "gpt-oss-20b"

    def test_default_effort_clamped(self):
        selection = resolve_model_config("auto", default_model="gpt-5-nano", default_effort="xhigh")
        assert selection.effort == "medium"
