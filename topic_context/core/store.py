"""ContextStore abstract base class: read contracts the core depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..types import Artifact, ConversationMeta, Message, Topic


class ContextStore(ABC):
    """Pluggable read surface over topics, messages, artifacts and conversations.

    Implementations must be safe to call from several threads at once: the
    assembler fans out its reads. Errors are never masked here; a failing
    backend raises and the caller sees it.
    """

    @abstractmethod
    def get_topics(self, topic_ids: list[str]) -> list[Topic]:
        """Fetch topics by id. Unknown ids are silently absent from the result."""

    @abstractmethod
    def get_topic(self, topic_id: str) -> Topic | None:
        """Fetch one topic by id. None if not found."""

    @abstractmethod
    def get_topic_messages(self, conversation_id: str, topic_id: str) -> list[Message]:
        """All messages of a topic within a conversation, oldest first."""

    @abstractmethod
    def get_recent_messages(self, conversation_id: str, limit: int) -> list[Message]:
        """The most recent *limit* messages of a conversation, oldest first."""

    @abstractmethod
    def get_artifacts(self, artifact_ids: list[str]) -> list[Artifact]:
        """Fetch artifacts by id."""

    @abstractmethod
    def get_conversation_meta(self, conversation_ids: list[str]) -> dict[str, ConversationMeta]:
        """Conversation titles and project names, keyed by conversation id."""

    def list_conversation_topics(self, conversation_id: str) -> list[Topic]:
        """Topics owned by a conversation. Empty by default."""
        return []

    def list_project_topics(self, conversation_id: str) -> list[Topic]:
        """Topics of the other conversations in this conversation's project. Empty by default."""
        return []

    def list_conversation_artifacts(self, conversation_id: str) -> list[Artifact]:
        """Artifacts owned by a conversation. Empty by default."""
        return []
