"""MessageSanitizer: strip UI-only annotations before counting or sending."""

from __future__ import annotations

import logging
import re
from typing import Protocol, runtime_checkable

from ..patterns import BLANK_RUN_PATTERN, DEFAULT_UI_ANNOTATION_PATTERNS
from ..types import Message

logger = logging.getLogger(__name__)


@runtime_checkable
class Sanitizer(Protocol):
    def __call__(self, message: Message) -> str: ...


def _compile_patterns(patterns: list[str]) -> list[re.Pattern]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.DOTALL))
        except re.error:
            logger.warning(f"Invalid annotation pattern, skipping: {pattern}")
    return compiled


class MessageSanitizer:
    """Removes render hints and surface payloads the model should never see."""

    def __init__(self, patterns: list[str] | None = None) -> None:
        self._patterns = _compile_patterns(
            patterns if patterns is not None else DEFAULT_UI_ANNOTATION_PATTERNS
        )
        self._blank_run = re.compile(BLANK_RUN_PATTERN)

    def __call__(self, message: Message) -> str:
        return self.sanitize_text(message.content or "")

    def sanitize_text(self, text: str) -> str:
        for pattern in self._patterns:
            text = pattern.sub("", text)
        text = self._blank_run.sub("\n\n", text)
        return text.strip()


_default = MessageSanitizer()


def sanitize_message(message: Message) -> str:
    """Module-level convenience wrapper around the default sanitizer."""
    return _default(message)
