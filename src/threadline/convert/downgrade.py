"""
Projections from the canonical form down to the older storage generations.

``current -> gen2`` is lossy in two places: ``filename`` on file parts and
``content.metadata`` are not representable and are dropped. Text, tool
invocations, reasoning text, sources and step boundaries survive a
``current -> gen2 -> current`` round trip.
"""

from __future__ import annotations

from typing import Any

from threadline.models.message import (
    CanonicalMessage,
    FilePart,
    ReasoningPart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolInvocationPart,
)

_TO_GEN2_STATE = {
    "input-streaming": "partial-call",
    "input-available": "call",
    "output-available": "result",
}


def _tool_invocation(part: ToolInvocationPart) -> dict[str, Any]:
    invocation: dict[str, Any] = {
        "state": _TO_GEN2_STATE[part.state],
        "toolCallId": part.tool_call_id,
        "toolName": part.tool_name,
        "args": part.input,
    }
    if part.state == "output-available":
        invocation["result"] = part.output
    return invocation


def to_gen2(message: CanonicalMessage) -> dict[str, Any]:
    """Project a canonical message to the prior (``format: 2``) generation."""
    parts: list[dict[str, Any]] = []
    tool_invocations: list[dict[str, Any]] = []

    for part in message.parts:
        if isinstance(part, ToolInvocationPart):
            invocation = _tool_invocation(part)
            parts.append({"type": "tool-invocation", "toolInvocation": invocation})
            tool_invocations.append(invocation)
        elif isinstance(part, TextPart):
            parts.append({"type": "text", "text": part.text})
        elif isinstance(part, FilePart):
            parts.append({"type": "file", "mimeType": part.media_type, "data": part.url})
        elif isinstance(part, ReasoningPart):
            if not part.text:
                continue
            parts.append(
                {"type": "reasoning", "reasoning": "", "details": [{"type": "text", "text": part.text}]}
            )
        elif isinstance(part, SourceUrlPart):
            source: dict[str, Any] = {"sourceType": "url", "id": part.source_id, "url": part.url}
            if part.title is not None:
                source["title"] = part.title
            parts.append({"type": "source", "source": source})
        elif isinstance(part, StepStartPart):
            parts.append({"type": "step-start"})

    content: dict[str, Any] = {"format": 2, "parts": parts}
    if tool_invocations:
        content["toolInvocations"] = tool_invocations

    gen2: dict[str, Any] = {
        "id": message.id,
        "role": message.role,
        "createdAt": message.created_at,
        "threadId": message.thread_id,
        "resourceId": message.resource_id,
        "content": content,
    }
    if message.type:
        gen2["type"] = message.type
    return gen2


# ── gen2 -> gen1 ───────────────────────────────────────────────────────────────


class _Gen1Writer:
    """Accumulates the gen1 messages one gen2 message splits into."""

    def __init__(self, message: dict[str, Any]) -> None:
        self._source = message
        self.out: list[dict[str, Any]] = []

    def emit(self, role: str, msg_type: str, content: Any, **extra: Any) -> None:
        n = len(self.out)
        entry: dict[str, Any] = {
            "id": self._source["id"] if n == 0 else f"{self._source['id']}__split-{n}",
            "role": role,
            "content": content,
            "type": msg_type,
            "createdAt": self._source.get("createdAt"),
            "threadId": self._source.get("threadId"),
            "resourceId": self._source.get("resourceId"),
        }
        entry.update(extra)
        self.out.append(entry)

    def emit_tool_step(self, invocations: list[dict[str, Any]]) -> None:
        if not invocations:
            return
        calls = [
            {
                "type": "tool-call",
                "toolCallId": inv["toolCallId"],
                "toolName": inv["toolName"],
                "args": inv.get("args"),
            }
            for inv in invocations
        ]
        meta = {
            "toolCallIds": [inv["toolCallId"] for inv in invocations],
            "toolCallArgs": [inv.get("args") for inv in invocations],
            "toolNames": [inv["toolName"] for inv in invocations],
        }
        self.emit("assistant", "tool-call", calls, **meta)

        results = [inv for inv in invocations if inv.get("state") == "result"]
        if results:
            self.emit(
                "tool",
                "tool-result",
                [
                    {
                        "type": "tool-result",
                        "toolCallId": inv["toolCallId"],
                        "toolName": inv["toolName"],
                        "result": inv.get("result"),
                    }
                    for inv in results
                ],
                toolCallIds=[inv["toolCallId"] for inv in results],
                toolNames=[inv["toolName"] for inv in results],
            )


def _gen1_content_part(part: dict[str, Any]) -> dict[str, Any] | None:
    part_type = part.get("type")
    if part_type == "text":
        return {"type": "text", "text": part["text"]}
    if part_type == "reasoning":
        text = part.get("reasoning") or "".join(
            d.get("text", "") for d in part.get("details") or [] if d.get("type") == "text"
        )
        return {"type": "reasoning", "text": text} if text else None
    if part_type == "file":
        mime = part.get("mimeType") or "unknown"
        if mime.startswith("image/"):
            return {"type": "image", "image": part["data"], "mimeType": mime}
        return {"type": "file", "data": part["data"], "mimeType": mime}
    return None


def _flatten(content_parts: list[dict[str, Any]]) -> str | list[dict[str, Any]]:
    if all(p["type"] == "text" for p in content_parts):
        return "".join(p["text"] for p in content_parts)
    return content_parts


def gen2_to_gen1(message: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Split one gen2 message into gen1 messages.

    Assistant messages become alternating ``text`` / ``tool-call`` /
    ``tool-result`` entries in part order. Entries listed in
    ``toolInvocations`` but absent from ``parts`` are grouped into one
    trailing step.
    """
    writer = _Gen1Writer(message)
    content = message["content"]
    role = message["role"]
    pending: list[dict[str, Any]] = []
    seen_calls: set[str] = set()

    def flush() -> None:
        if pending:
            writer.emit(role, "text", _flatten(pending))
            pending.clear()

    for part in content.get("parts") or []:
        if part.get("type") == "tool-invocation":
            invocation = part["toolInvocation"]
            if invocation.get("state") == "partial-call":
                continue
            flush()
            seen_calls.add(invocation["toolCallId"])
            writer.emit_tool_step([invocation])
            continue
        converted = _gen1_content_part(part)
        if converted is not None:
            pending.append(converted)
    flush()

    leftover = [
        inv
        for inv in content.get("toolInvocations") or []
        if inv["toolCallId"] not in seen_calls and inv.get("state") != "partial-call"
    ]
    writer.emit_tool_step(leftover)

    if not writer.out and role == "user":
        writer.emit(role, "text", content.get("content") or "")
    return writer.out


def to_gen1(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Project gen2 messages to the oldest generation."""
    out: list[dict[str, Any]] = []
    for message in messages:
        out.extend(gen2_to_gen1(message))
    return out
