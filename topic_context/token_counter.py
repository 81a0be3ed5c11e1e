"""Token counting for budgets: a cheap character estimate plus pluggable exact counters."""

from __future__ import annotations

import importlib
from typing import Callable, Iterable

TokenCounter = Callable[[str], int]

CHARS_PER_TOKEN = 4
DEFAULT_TIKTOKEN_ENCODING = "o200k_base"


def estimate_tokens(text: str) -> int:
    """ceil(len(text) / 4); empty text costs 0."""
    if not text:
        return 0
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


def count_all(texts: Iterable[str | None], counter: TokenCounter = estimate_tokens) -> int:
    """Total tokens over *texts*. None counts as empty and negatives clamp to 0."""
    return sum(max(0, counter(text or "")) for text in texts)


def _tiktoken_counter(encoding_name: str) -> TokenCounter:
    try:
        import tiktoken
    except ImportError:
        raise ImportError(
            "tiktoken not installed. Install with: pip install topic-context[tiktoken]"
        )
    enc = tiktoken.get_encoding(encoding_name)
    return lambda text: len(enc.encode(text)) if text else 0


def create_token_counter(mode: str = "estimate") -> TokenCounter:
    """Factory for token counters.

    Modes:
        "estimate" - ceil(len(text) / 4), no dependencies
        "tiktoken" or "tiktoken:<encoding>" - needs the tiktoken extra
        "callable:module.path:func" - any importable str -> int function
    """
    if mode == "estimate":
        return estimate_tokens

    if mode == "tiktoken" or mode.startswith("tiktoken:"):
        _, _, encoding_name = mode.partition(":")
        return _tiktoken_counter(encoding_name or DEFAULT_TIKTOKEN_ENCODING)

    if mode.startswith("callable:"):
        parts = mode[len("callable:"):].rsplit(":", 1)
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Invalid callable spec: {mode}. Expected callable:module:func")
        module_path, func_name = parts
        return getattr(importlib.import_module(module_path), func_name)

    raise ValueError(f"Unknown token counter mode: {mode}")
