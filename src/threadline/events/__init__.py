"""Threadline event bus."""

from threadline.events.bus import EventBus, Handler, ThreadlineEvent
from threadline.events.payloads import (
    MessageAppendedPayload,
    MessageChangedPayload,
    MessagesDrainedPayload,
    MessageSkippedPayload,
    SystemMessageAddedPayload,
)

__all__ = [
    "EventBus",
    "Handler",
    "MessageAppendedPayload",
    "MessageChangedPayload",
    "MessageSkippedPayload",
    "MessagesDrainedPayload",
    "SystemMessageAddedPayload",
    "ThreadlineEvent",
]
