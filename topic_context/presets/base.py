"""Preset registry: named deployment configs shipped with the package."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import load_config
from ..types import TopicContextConfig


@dataclass(frozen=True)
class Preset:
    """A deployment profile: the raw config dict plus the commented YAML `init` writes."""
    name: str
    description: str
    config_dict: dict
    template: str

    def to_config(self) -> TopicContextConfig:
        return load_config(config_dict=self.config_dict)


_PRESETS: dict[str, Preset] = {}


def register_preset(preset: Preset) -> None:
    """Register a preset; names are unique."""
    if preset.name in _PRESETS:
        raise ValueError(f"Preset '{preset.name}' is already registered")
    _PRESETS[preset.name] = preset


def get_preset(name: str) -> Preset | None:
    return _PRESETS.get(name)


def list_presets() -> list[Preset]:
    """All registered presets, sorted by name."""
    return sorted(_PRESETS.values(), key=lambda p: p.name)
