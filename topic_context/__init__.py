"""topic-context: topic-aware routing and context assembly for multi-topic chats."""

from .config import load_config
from .engine import TopicContextEngine
from .types import (
    BuildContextResult,
    DecisionRouterInput,
    Message,
    RouterDecision,
    Topic,
    TopicAction,
    TopicContextConfig,
    TurnContext,
)

__version__ = "0.1.0"

__all__ = [
    "TopicContextEngine",
    "load_config",
    "BuildContextResult",
    "DecisionRouterInput",
    "Message",
    "RouterDecision",
    "Topic",
    "TopicAction",
    "TopicContextConfig",
    "TurnContext",
]
