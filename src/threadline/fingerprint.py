"""
Cheap structural fingerprints for duplicate detection.

A fingerprint is an order-sensitive string built from each part's type tag
plus a small proxy for its payload (lengths, ids, states). It is deliberately
not a content hash: two texts of equal length fingerprint the same. That is
acceptable because fingerprints are only compared between messages that
already share an id or a provenance/thread context.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from threadline.models.message import (
    CanonicalMessage,
    ContentPart,
    FilePart,
    ReasoningPart,
    SourceUrlPart,
    TextPart,
    ToolInvocationPart,
)


def fingerprint_part(part: ContentPart) -> str:
    key = part.type
    if isinstance(part, TextPart | ReasoningPart):
        key += str(len(part.text))
    elif isinstance(part, ToolInvocationPart):
        key += part.tool_call_id
        key += part.state
    elif isinstance(part, FilePart):
        key += str(len(part.url))
        key += part.media_type
        key += part.filename or ""
    elif isinstance(part, SourceUrlPart):
        key += part.url
    return key


def fingerprint_parts(parts: Iterable[ContentPart]) -> str:
    """Fingerprint a canonical part list."""
    return "".join(fingerprint_part(part) for part in parts)


def _payload_proxy(value: Any) -> str:
    # bytes and long inline payloads are represented by length only
    if isinstance(value, bytes | bytearray | memoryview):
        return str(len(value))
    text = str(value)
    if text.startswith(("http://", "https://")):
        return text
    return str(len(text))


def fingerprint_content(content: str | Iterable[Mapping[str, Any]]) -> str:
    """
    Fingerprint model-message style content (system messages, protocol input).

    String content is used verbatim.
    """
    if isinstance(content, str):
        return content
    key = ""
    for part in content:
        part_type = part.get("type", "")
        key += part_type
        if part_type in ("text", "reasoning"):
            key += str(len(part.get("text", "")))
        elif part_type in ("tool-call", "tool-result"):
            key += part.get("toolCallId", "")
            key += part.get("toolName", "")
        elif part_type == "file":
            key += part.get("filename") or ""
            key += part.get("mediaType", "")
            key += _payload_proxy(part.get("data", ""))
        elif part_type == "image":
            key += _payload_proxy(part.get("image", ""))
            key += part.get("mediaType") or ""
    return key


def messages_are_equal(one: CanonicalMessage, two: CanonicalMessage) -> bool:
    """True when both messages have the same id and part fingerprint."""
    return one.id == two.id and fingerprint_parts(one.parts) == fingerprint_parts(two.parts)
