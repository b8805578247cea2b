"""Shared fixtures for threadline tests."""

from __future__ import annotations

import itertools
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from threadline.convert.context import ConversionContext
from threadline.events.bus import EventBus, ThreadlineEvent
from threadline.message_list import MessageList
from threadline.models.config import MessageListConfig
from threadline.models.message import (
    CanonicalMessage,
    ContentPart,
    MessageContent,
    Provenance,
)
from threadline.sequencer import TimestampSequencer

FIXED_NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)
THREAD_ID = "thread_1"
RESOURCE_ID = "user_1"


@pytest.fixture
def frozen_sequencer():
    """Sequencer whose clock never moves; every stamp is forced apart by 1 ms."""
    return TimestampSequencer(clock=lambda: FIXED_NOW)


@pytest.fixture
def event_bus():
    """EventBus with a .collected list for asserting events."""
    bus = EventBus()
    collected: list[tuple[ThreadlineEvent, dict[str, Any]]] = []

    def _collect(event: ThreadlineEvent, payload: dict[str, Any]) -> None:
        collected.append((event, payload))

    bus.subscribe_all(_collect)
    bus.collected = collected  # type: ignore[attr-defined]
    return bus


@pytest.fixture
def message_list(event_bus, frozen_sequencer):
    """MessageList bound to THREAD_ID/RESOURCE_ID with deterministic ids and clock."""
    counter = itertools.count(1)
    return MessageList(
        MessageListConfig(thread_id=THREAD_ID, resource_id=RESOURCE_ID),
        generate_message_id=lambda: f"gen_{next(counter)}",
        event_bus=event_bus,
        sequencer=frozen_sequencer,
    )


@pytest.fixture
def ctx():
    """ConversionContext with a fixed id and an identity clock."""
    return ConversionContext(
        provenance=Provenance.USER,
        new_id=lambda: "new_id",
        created_at=lambda supplied: supplied or FIXED_NOW,
        thread_id=THREAD_ID,
    )


def tool_call(call_id: str, name: str = "weather", args: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "type": "tool-call",
        "toolCallId": call_id,
        "toolName": name,
        "input": args if args is not None else {"city": "Paris"},
    }


def tool_result(call_id: str, name: str = "weather", output: Any = "sunny") -> dict[str, Any]:
    return {"type": "tool-result", "toolCallId": call_id, "toolName": name, "output": output}


def canonical(
    msg_id: str,
    role: str = "assistant",
    parts: list[ContentPart] | None = None,
    offset_ms: int = 0,
    thread_id: str | None = THREAD_ID,
) -> CanonicalMessage:
    """Helper to create a canonical message at FIXED_NOW + offset_ms."""
    return CanonicalMessage(
        id=msg_id,
        role=role,
        created_at=FIXED_NOW + timedelta(milliseconds=offset_ms),
        thread_id=thread_id,
        content=MessageContent(parts=parts or []),
    )


def gen2_message(
    msg_id: str,
    role: str,
    parts: list[dict[str, Any]],
    created_at: str = "2024-06-01T10:00:00Z",
    thread_id: str = THREAD_ID,
    **content_extra: Any,
) -> dict[str, Any]:
    """Helper to create a prior-generation (format 2) storage row."""
    return {
        "id": msg_id,
        "role": role,
        "createdAt": created_at,
        "threadId": thread_id,
        "resourceId": RESOURCE_ID,
        "content": {"format": 2, "parts": parts, **content_extra},
    }
