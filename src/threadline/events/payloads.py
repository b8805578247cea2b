"""Typed payload definitions for each ThreadlineEvent.

Usage example::

    from threadline.events.bus import EventBus, ThreadlineEvent
    from threadline.events.payloads import MessageSkippedPayload

    def on_skip(event: ThreadlineEvent, payload: MessageSkippedPayload) -> None:
        print(f"{payload['message_id']} skipped ({payload['reason']})")

    bus.subscribe(ThreadlineEvent.MESSAGE_SKIPPED, on_skip)  # type: ignore[arg-type]
"""

from __future__ import annotations

from typing import TypedDict


class MessageChangedPayload(TypedDict):
    """Payload for ``MESSAGE_INSERTED`` and ``MESSAGE_REPLACED``."""

    message_id: str
    role: str
    """``"user"`` or ``"assistant"``."""
    provenance: str


class MessageAppendedPayload(TypedDict):
    """Payload for ``MESSAGE_APPENDED``."""

    message_id: str
    """The stored message the parts were merged into."""
    source_id: str
    """ID the incoming message carried; it is not stored."""
    provenance: str


class MessageSkippedPayload(TypedDict):
    """Payload for ``MESSAGE_SKIPPED``."""

    message_id: str
    provenance: str
    reason: str
    """``"duplicate"``, ``"memory_duplicate"`` or ``"orphan_tool_result"``."""


class SystemMessageAddedPayload(TypedDict):
    """Payload for ``SYSTEM_MESSAGE_ADDED``."""

    tag: str | None


class MessagesDrainedPayload(TypedDict):
    """Payload for ``MESSAGES_DRAINED``."""

    message_ids: list[str]
