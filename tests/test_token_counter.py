"""Tests for token counting."""

import pytest

from topic_context.token_counter import count_all, create_token_counter, estimate_tokens


class TestEstimateTokens:
    def test_empty_is_zero(self):
        assert estimate_tokens("") == 0

    def test_rounds_up(self):
        assert estimate_tokens("a") == 1
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_monotonic_under_concatenation(self):
        a, b = "hello world", "another chunk of text"
        assert estimate_tokens(a + b) >= estimate_tokens(a)
        assert estimate_tokens(a + b) >= estimate_tokens(b)


class TestCreateTokenCounter:
    def test_estimate_mode(self):
        assert create_token_counter("estimate") is estimate_tokens

    def test_callable_mode(self):
        counter = create_token_counter("callable:topic_context.token_counter:estimate_tokens")
        assert counter("abcdefgh") == 2

    def test_invalid_callable_spec(self):
        with pytest.raises(ValueError, match="Invalid callable spec"):
            create_token_counter("callable:nocolon")

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="Unknown token counter mode"):
            create_token_counter("bogus")


class TestCountAll:
    def test_sums_and_treats_none_as_empty(self):
        assert count_all(["abcd", None, "", "abcde"]) == 3

    def test_negative_counts_clamped(self):
        assert count_all(["x", "y"], lambda text: -5) == 0


def test_tiktoken_missing_encoding_prefix_uses_default(monkeypatch):
    import topic_context.token_counter as tc

    seen = []
    monkeypatch.setattr(tc, "_tiktoken_counter", lambda name: seen.append(name) or estimate_tokens)
    tc.create_token_counter("tiktoken")
    tc.create_token_counter("tiktoken:cl100k_base")
    assert seen == ["o200k_base", "cl100k_base"]
