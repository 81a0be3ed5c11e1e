"""Generation model catalogue: supported models, efforts, and default resolution."""

from __future__ import annotations

from dataclasses import dataclass

AUTO = "auto"

MODEL_FAMILIES: list[str] = [
    "grok-4-1-fast",
    "gpt-5-nano",
    "gpt-oss-20b",
    "gpt-5-mini",
    "gpt-5.2",
    "gpt-5.2-pro",
]

REASONING_EFFORTS: list[str] = ["none", "low", "medium", "high", "xhigh"]

# Only reachable when the user explicitly asks for it.
TOP_TIER_MODEL = "gpt-5.2-pro"
TOP_TIER_CLAMP = "gpt-5.2"

SUPPORTED_EFFORTS: dict[str, list[str]] = {
    "gpt-5-nano": ["low", "medium"],
    "gpt-oss-20b": ["none", "low", "medium", "high"],
}

DEFAULT_EFFORTS: dict[str, str] = {
    "grok-4-1-fast": "low",
    "gpt-5-nano": "low",
    "gpt-oss-20b": "low",
    "gpt-5-mini": "low",
    "gpt-5.2": "medium",
    "gpt-5.2-pro": "high",
}


@dataclass
class ModelSelection:
    model: str
    effort: str


def is_known_model(model: str | None) -> bool:
    return model in MODEL_FAMILIES


def is_forced(preference: str | None) -> bool:
    """True when the user pinned a concrete model instead of ``auto``."""
    return bool(preference) and preference != AUTO and is_known_model(preference)


def clamp_effort(model: str, effort: str) -> str:
    """Map *effort* onto the nearest effort *model* supports."""
    supported = SUPPORTED_EFFORTS.get(model)
    if not supported or effort in supported:
        return effort
    idx = REASONING_EFFORTS.index(effort) if effort in REASONING_EFFORTS else 1
    # Walk outward from the requested level, preferring lower effort on ties
    for distance in range(1, len(REASONING_EFFORTS)):
        for candidate_idx in (idx - distance, idx + distance):
            if 0 <= candidate_idx < len(REASONING_EFFORTS):
                candidate = REASONING_EFFORTS[candidate_idx]
                if candidate in supported:
                    return candidate
    return supported[0]


def clamp_model(model: str, preference: str | None) -> str:
    """Never auto-select the top tier unless the user asked for it."""
    if model == TOP_TIER_MODEL and preference != TOP_TIER_MODEL:
        return TOP_TIER_CLAMP
    return model


def resolve_model_config(
    preference: str | None,
    default_model: str = "gpt-oss-20b",
    default_effort: str = "low",
) -> ModelSelection:
    """Deterministic model/effort pair used when the classifier is unavailable."""
    if is_forced(preference):
        model = preference  # type: ignore[assignment]
        effort = DEFAULT_EFFORTS.get(model, default_effort)
    else:
        model = default_model if is_known_model(default_model) else "gpt-oss-20b"
        effort = default_effort
    if effort not in REASONING_EFFORTS:
        effort = "low"
    return ModelSelection(model=model, effort=clamp_effort(model, effort))
