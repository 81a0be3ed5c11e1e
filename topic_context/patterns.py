"""Regex patterns for UI-only annotations stripped from message content.

Kept in a standalone module so both the sanitizer and tests can import
them without pulling in the assembler.
"""

DEFAULT_UI_ANNOTATION_PATTERNS: list[str] = [
    r"<!--.*?-->",                        # HTML comments (render hints, anchors)
    r"```a2ui[^\n]*\n.*?```",             # fenced A2UI surface payloads
    r"\[\[ui:[^\]]*\]\]",                 # inline [[ui:...]] markers
]

BLANK_RUN_PATTERN = r"\n{3,}"
