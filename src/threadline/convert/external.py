"""Projections to the external protocol (model input) and UI message shapes."""

from __future__ import annotations

from typing import Any

from threadline.models.message import (
    CanonicalMessage,
    FilePart,
    ReasoningPart,
    TextPart,
    ToolInvocationPart,
)

# Tool states that are not yet resolved and cannot be replayed to a model.
_IN_FLIGHT = frozenset({"input-streaming", "input-available"})


def sanitize(messages: list[CanonicalMessage]) -> list[CanonicalMessage]:
    """
    Strip in-flight tool calls and drop messages left without parts.

    Returns copies; the inputs are not modified.
    """
    sanitized: list[CanonicalMessage] = []
    for message in messages:
        if not message.parts:
            continue
        safe_parts = [
            p for p in message.parts if not (isinstance(p, ToolInvocationPart) and p.state in _IN_FLIGHT)
        ]
        if not safe_parts:
            continue
        copy = message.model_copy(deep=True)
        copy.content.parts = [p.model_copy(deep=True) for p in safe_parts]
        sanitized.append(copy)
    return sanitized


def _file_part(part: FilePart) -> dict[str, Any]:
    if part.media_type.startswith("image/"):
        return {"type": "image", "image": part.url, "mediaType": part.media_type}
    out: dict[str, Any] = {"type": "file", "data": part.url, "mediaType": part.media_type}
    if part.filename:
        out["filename"] = part.filename
    return out


def _user_model_message(message: CanonicalMessage) -> dict[str, Any] | None:
    content: list[dict[str, Any]] = []
    for part in message.parts:
        if isinstance(part, TextPart):
            content.append({"type": "text", "text": part.text})
        elif isinstance(part, FilePart):
            content.append(_file_part(part))
    if not content:
        return None
    return {"role": "user", "content": content}


def _assistant_model_messages(message: CanonicalMessage) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    block: list[dict[str, Any]] = []
    results: list[dict[str, Any]] = []

    def flush() -> None:
        if block:
            out.append({"role": "assistant", "content": list(block)})
        if results:
            out.append({"role": "tool", "content": list(results)})
        block.clear()
        results.clear()

    for part in message.parts:
        if isinstance(part, ToolInvocationPart):
            block.append(
                {
                    "type": "tool-call",
                    "toolCallId": part.tool_call_id,
                    "toolName": part.tool_name,
                    "input": part.input if part.input is not None else {},
                }
            )
            results.append(
                {
                    "type": "tool-result",
                    "toolCallId": part.tool_call_id,
                    "toolName": part.tool_name,
                    "output": part.output,
                }
            )
            continue
        # Results must directly follow their calls
        if results:
            flush()
        if isinstance(part, TextPart):
            block.append({"type": "text", "text": part.text})
        elif isinstance(part, ReasoningPart):
            block.append({"type": "reasoning", "text": part.text})
        elif isinstance(part, FilePart):
            block.append(_file_part(part))
    flush()
    return out


def to_external_model_messages(messages: list[CanonicalMessage]) -> list[dict[str, Any]]:
    """Sanitize, then convert canonical messages to model input messages."""
    out: list[dict[str, Any]] = []
    for message in sanitize(messages):
        if message.role == "user":
            converted = _user_model_message(message)
            if converted is not None:
                out.append(converted)
        else:
            out.extend(_assistant_model_messages(message))
    return out


def to_external_ui(message: CanonicalMessage) -> dict[str, Any]:
    """Convert a canonical message to a UI message with ``tool-<name>`` parts."""
    metadata: dict[str, Any] = dict(message.content.metadata or {})
    metadata["createdAt"] = message.created_at
    if message.thread_id:
        metadata["threadId"] = message.thread_id
    if message.resource_id:
        metadata["resourceId"] = message.resource_id

    parts: list[dict[str, Any]] = []
    for part in message.parts:
        wire = part.to_wire()
        if isinstance(part, ToolInvocationPart):
            wire.pop("toolName", None)
            wire["type"] = f"tool-{part.tool_name}"
        parts.append(wire)

    return {"id": message.id, "role": message.role, "metadata": metadata, "parts": parts}


def content_to_text(content: str | list[dict[str, Any]]) -> str:
    """Concatenate the text parts of model-message content."""
    if isinstance(content, str):
        return content
    return "".join(p.get("text", "") for p in content if p.get("type") == "text")
