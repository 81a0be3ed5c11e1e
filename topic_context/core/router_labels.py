"""Typed parse step for decision-router output.

``parse_router_labels`` turns raw model text into either a validated
:class:`RouterLabels` or a tagged :class:`LabelValidationError`; it never
raises.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .model_config import MODEL_FAMILIES, REASONING_EFFORTS

TOPIC_ACTIONS = ["continue_active", "new", "reopen_existing"]

_PLACEHOLDER_IDS = {"", "none", "null", "undefined", "n/a"}

ROUTER_OUTPUT_SCHEMA: dict = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "labels": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "topicAction": {"type": "string", "enum": TOPIC_ACTIONS},
                "primaryTopicId": {"type": ["string", "null"]},
                "secondaryTopicIds": {"type": "array", "items": {"type": "string"}, "default": []},
                "newParentTopicId": {"type": ["string", "null"]},
                "model": {"type": "string", "enum": MODEL_FAMILIES},
                "effort": {"type": "string", "enum": REASONING_EFFORTS},
                "memoryTypesToLoad": {"type": "array", "items": {"type": "string"}, "default": []},
                "artifactsToLoad": {"type": "array", "items": {"type": "string"}, "default": []},
                "reason": {"type": "string"},
            },
            "required": [
                "topicAction",
                "primaryTopicId",
                "secondaryTopicIds",
                "newParentTopicId",
                "model",
                "effort",
                "reason",
                "memoryTypesToLoad",
            ],
        },
    },
    "required": ["labels"],
}

ModelName = Literal[
    "grok-4-1-fast", "gpt-5-nano", "gpt-oss-20b", "gpt-5-mini", "gpt-5.2", "gpt-5.2-pro",
]
EffortName = Literal["none", "low", "medium", "high", "xhigh"]


def _clean_id(value: object) -> Optional[str]:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    if stripped.lower() in _PLACEHOLDER_IDS:
        return None
    return stripped


class RouterLabels(BaseModel):
    """The ``labels`` object the classifier must return."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    topic_action: Literal["continue_active", "new", "reopen_existing"] = Field(alias="topicAction")
    # Nullable but required, matching ROUTER_OUTPUT_SCHEMA
    primary_topic_id: Optional[str] = Field(alias="primaryTopicId")
    secondary_topic_ids: list[str] = Field(alias="secondaryTopicIds")
    new_parent_topic_id: Optional[str] = Field(alias="newParentTopicId")
    model: ModelName
    effort: EffortName
    memory_types_to_load: list[str] = Field(alias="memoryTypesToLoad")
    artifacts_to_load: list[str] = Field(default_factory=list, alias="artifactsToLoad")
    reason: str

    @field_validator("primary_topic_id", "new_parent_topic_id", mode="before")
    @classmethod
    def _placeholder_ids(cls, value: object) -> Optional[str]:
        return _clean_id(value)

    @field_validator("secondary_topic_ids", "memory_types_to_load", "artifacts_to_load", mode="before")
    @classmethod
    def _string_list(cls, value: object) -> list[str]:
        if not isinstance(value, list):
            raise ValueError("must be an array")
        cleaned: list[str] = []
        for item in value:
            item_id = _clean_id(item)
            if item_id and item_id not in cleaned:
                cleaned.append(item_id)
        return cleaned

    @field_validator("reason", mode="before")
    @classmethod
    def _single_line_reason(cls, value: object) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("reason must be a non-empty string")
        return re.sub(r"\s+", " ", value).strip()[:80]


class RouterEnvelope(BaseModel):
    model_config = ConfigDict(extra="forbid")

    labels: RouterLabels


@dataclass
class LabelValidationError:
    """Why a classifier response was rejected."""
    kind: Literal["empty", "json", "schema"]
    detail: str


def extract_json_object(raw: str) -> str:
    """Strip fences and thinking blocks and isolate the outermost JSON object."""
    text = (raw or "").strip()

    # Strip markdown fences
    text = re.sub(r"```(?:json)?", "", text, flags=re.IGNORECASE).strip()

    # Strip thinking tags
    if "<think>" in text:
        text = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()

    start = text.find("{")
    end = text.rfind("}") + 1
    if start >= 0 and end > start:
        return text[start:end]
    return text


def parse_router_labels(raw: str) -> RouterLabels | LabelValidationError:
    """Validate classifier output against the router schema."""
    if not raw or not raw.strip():
        return LabelValidationError(kind="empty", detail="empty response")

    text = extract_json_object(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return LabelValidationError(kind="json", detail=str(e))

    try:
        return RouterEnvelope.model_validate(data).labels
    except ValidationError as e:
        return LabelValidationError(kind="schema", detail=str(e))
