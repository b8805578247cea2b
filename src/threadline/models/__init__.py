"""Threadline data models."""

from threadline.models.config import MessageListConfig
from threadline.models.message import (
    CanonicalMessage,
    ContentPart,
    FilePart,
    MessageContent,
    MessageShape,
    Provenance,
    ReasoningPart,
    SourceUrlPart,
    StepStartPart,
    SystemMessage,
    TextPart,
    ToolInvocationPart,
    ToolState,
)

__all__ = [
    # Config
    "MessageListConfig",
    # Message parts
    "TextPart",
    "FilePart",
    "ReasoningPart",
    "SourceUrlPart",
    "StepStartPart",
    "ToolInvocationPart",
    "ToolState",
    "ContentPart",
    # Messages
    "MessageContent",
    "CanonicalMessage",
    "SystemMessage",
    # Tags
    "Provenance",
    "MessageShape",
]
