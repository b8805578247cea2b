"""
Threadline: conversation message reconciliation for LLM agent runtimes.

Primary entry point::

    from threadline import MessageList

    messages = MessageList(thread_id="thread_1")
    messages.add(stored_rows, "memory")
    messages.add("Hello!", "user")
    prompt = messages.get.prompt()
"""

from threadline.classify import classify
from threadline.errors import (
    ContextMismatchError,
    IncompatibleContentError,
    MalformedMessageError,
    ResourceMismatchError,
    SystemMessageRoutingError,
    ThreadlineError,
    ThreadMismatchError,
    UnhandledMessageShapeError,
    UnhandledRoleError,
)
from threadline.events.bus import EventBus, ThreadlineEvent
from threadline.fingerprint import fingerprint_content, fingerprint_parts
from threadline.merge import MergeAction, MergeEngine, MergeOutcome, SkipReason
from threadline.message_list import MessageList, make_id
from threadline.models import (
    CanonicalMessage,
    ContentPart,
    FilePart,
    MessageContent,
    MessageListConfig,
    MessageShape,
    Provenance,
    ReasoningPart,
    SourceUrlPart,
    StepStartPart,
    SystemMessage,
    TextPart,
    ToolInvocationPart,
)
from threadline.sequencer import TimestampSequencer
from threadline.views import MessageView, MessageViews

__version__ = "0.1.0"

__all__ = [
    # Core
    "MessageList",
    "make_id",
    "classify",
    "MergeEngine",
    "MergeAction",
    "MergeOutcome",
    "SkipReason",
    "TimestampSequencer",
    "MessageView",
    "MessageViews",
    "fingerprint_parts",
    "fingerprint_content",
    # Config
    "MessageListConfig",
    # Models
    "CanonicalMessage",
    "MessageContent",
    "ContentPart",
    "TextPart",
    "FilePart",
    "ReasoningPart",
    "SourceUrlPart",
    "StepStartPart",
    "ToolInvocationPart",
    "SystemMessage",
    "Provenance",
    "MessageShape",
    # Events
    "EventBus",
    "ThreadlineEvent",
    # Errors
    "ThreadlineError",
    "MalformedMessageError",
    "UnhandledMessageShapeError",
    "UnhandledRoleError",
    "SystemMessageRoutingError",
    "ContextMismatchError",
    "ThreadMismatchError",
    "ResourceMismatchError",
    "IncompatibleContentError",
]
