"""
Pairwise upconverters from every accepted input shape to the canonical form.

Each adapter maps one shape to the next generation and nothing more:

    gen1 -> gen2 -> current
    external-protocol -> current
    external-ui -> current

Adapters work on plain camelCase dicts and never assign ids or timestamps;
:func:`upconvert` does that once, after the chain has run, and validates the
result into a :class:`~threadline.models.message.CanonicalMessage`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from threadline.convert.context import ConversionContext, ConversionResult
from threadline.convert.data_content import to_base64
from threadline.errors import (
    IncompatibleContentError,
    MalformedMessageError,
    SystemMessageRoutingError,
    UnhandledRoleError,
)
from threadline.models.message import CanonicalMessage, MessageShape, normalize_tool_part

Adapter = Callable[[Mapping[str, Any], ConversionContext], dict[str, Any]]

# Part types each model-message role may carry.
_ALLOWED_PARTS: dict[str, frozenset[str]] = {
    "user": frozenset({"text", "image", "file"}),
    "assistant": frozenset(
        {"text", "file", "reasoning", "redacted-reasoning", "tool-call", "tool-result"}
    ),
    "tool": frozenset({"tool-result"}),
}

_KNOWN_MODEL_PARTS: frozenset[str] = frozenset().union(*_ALLOWED_PARTS.values(), {"image"})

_CANONICAL_PART_TYPES: frozenset[str] = frozenset(
    {"text", "file", "reasoning", "source-url", "step-start", "tool-invocation"}
)


# ── Shared helpers ─────────────────────────────────────────────────────────────


def canonical_role(message: Mapping[str, Any], provenance: Any = None) -> str:
    """
    Map an input role onto ``user``/``assistant``.

    Raises:
        SystemMessageRoutingError: For ``system``; those go through add_system().
        UnhandledRoleError: For anything else that is not user/assistant/tool.
    """
    role = message.get("role")
    if role in ("assistant", "tool"):
        return "assistant"
    if role == "user":
        return "user"
    if role == "system":
        raise SystemMessageRoutingError(dict(message), None if provenance is None else str(provenance))
    raise UnhandledRoleError(role, dict(message))


def check_part_allowed(part_type: str, role: str) -> None:
    """Raise IncompatibleContentError when a known part type cannot appear under ``role``."""
    allowed = _ALLOWED_PARTS.get(role)
    if allowed is None:
        return
    if part_type in _KNOWN_MODEL_PARTS and part_type not in allowed:
        raise IncompatibleContentError(part_type, role)


def _encode_file_data(data: Any, ctx: ConversionContext, **log_kw: Any) -> str | None:
    try:
        return to_base64(data)
    except (TypeError, ValueError) as exc:
        ctx.dropped("file_part_encode_failed", error=str(exc), **log_kw)
        return None


def keep_known_parts(parts: list[Any], ctx: ConversionContext) -> list[dict[str, Any]]:
    """Drop unknown part types and empty reasoning from a canonical-vocabulary part list."""
    kept: list[dict[str, Any]] = []
    for raw in parts:
        part = normalize_tool_part(raw)
        part_type = part.get("type") if isinstance(part, Mapping) else None
        if part_type not in _CANONICAL_PART_TYPES:
            ctx.dropped("unknown_part_dropped", part_type=part_type)
            continue
        if part_type == "reasoning" and not part.get("text"):
            ctx.dropped("empty_reasoning_dropped")
            continue
        kept.append(dict(part))
    return kept


# ── gen1 -> gen2 ───────────────────────────────────────────────────────────────


def gen1_to_gen2(message: Mapping[str, Any], ctx: ConversionContext) -> dict[str, Any]:
    """
    Lift an oldest-generation message (model-message content plus storage fields).

    Tool results keep an empty ``args`` object; when merged onto the matching
    call the call's arguments win.
    """
    role = canonical_role(message, ctx.provenance)
    source_role = message.get("role")
    content = message.get("content")
    parts: list[dict[str, Any]] = []
    tool_invocations: list[dict[str, Any]] = []

    if isinstance(content, str):
        parts.append({"type": "text", "text": content})
    elif isinstance(content, list):
        for part in content:
            part_type = part.get("type")
            check_part_allowed(part_type, source_role)
            if part_type == "text":
                parts.append({"type": "text", "text": part.get("text", "")})
            elif part_type == "tool-call":
                parts.append(
                    {
                        "type": "tool-invocation",
                        "toolInvocation": {
                            "state": "call",
                            "toolCallId": part["toolCallId"],
                            "toolName": part["toolName"],
                            "args": part.get("args", {}),
                        },
                    }
                )
            elif part_type == "tool-result":
                invocation = {
                    "state": "result",
                    "toolCallId": part["toolCallId"],
                    "toolName": part["toolName"],
                    "result": part["result"] if part.get("result") is not None else "",
                    "args": {},
                }
                parts.append({"type": "tool-invocation", "toolInvocation": invocation})
                tool_invocations.append(invocation)
            elif part_type == "reasoning":
                parts.append(
                    {
                        "type": "reasoning",
                        "reasoning": "",
                        "details": [
                            {"type": "text", "text": part.get("text", ""), "signature": part.get("signature")}
                        ],
                    }
                )
            elif part_type == "redacted-reasoning":
                parts.append(
                    {
                        "type": "reasoning",
                        "reasoning": "",
                        "details": [{"type": "redacted", "data": part.get("data", "")}],
                    }
                )
            elif part_type in ("image", "file"):
                data = part.get("image") if part_type == "image" else part.get("data")
                encoded = _encode_file_data(data, ctx, message_id=message.get("id"))
                if encoded is None:
                    continue
                file_part = {
                    "type": "file",
                    "data": encoded,
                    "mimeType": part.get("mimeType") or part.get("mediaType") or "unknown",
                }
                if part.get("filename"):
                    file_part["filename"] = part["filename"]
                parts.append(file_part)
            else:
                ctx.dropped("unknown_part_dropped", part_type=part_type, message_id=message.get("id"))

    gen2_content: dict[str, Any] = {"format": 2, "parts": parts}
    if tool_invocations:
        gen2_content["toolInvocations"] = tool_invocations
    if isinstance(content, str):
        gen2_content["content"] = content

    gen2: dict[str, Any] = {
        "id": message.get("id"),
        "role": role,
        "createdAt": message.get("createdAt"),
        "threadId": message.get("threadId"),
        "resourceId": message.get("resourceId"),
        "content": gen2_content,
    }
    if message.get("type") and message.get("type") not in ("text", "tool-call", "tool-result"):
        gen2["type"] = message["type"]
    return gen2


# ── gen2 -> current ────────────────────────────────────────────────────────────

_GEN2_TOOL_STATES = {
    "partial-call": "input-streaming",
    "call": "input-available",
    "result": "output-available",
}


def _gen2_reasoning_text(part: Mapping[str, Any]) -> str:
    if part.get("reasoning"):
        return part["reasoning"]
    return "".join(
        detail.get("text", "") for detail in part.get("details") or [] if detail.get("type") == "text"
    )


def gen2_to_current(message: Mapping[str, Any], ctx: ConversionContext) -> dict[str, Any]:
    """Lift a prior-generation (``format: 2``) message to the current generation."""
    role = canonical_role(message, ctx.provenance)
    gen2_content = message["content"]
    parts: list[dict[str, Any]] = []
    file_urls: set[str] = set()

    for part in gen2_content.get("parts") or []:
        part_type = part.get("type")
        if part_type in ("step-start", "text"):
            parts.append(dict(part))
        elif part_type == "tool-invocation":
            invocation = part["toolInvocation"]
            tool_part: dict[str, Any] = {
                "type": "tool-invocation",
                "toolCallId": invocation["toolCallId"],
                "toolName": invocation["toolName"],
                "state": _GEN2_TOOL_STATES.get(invocation.get("state"), "input-streaming"),
                "input": invocation.get("args"),
            }
            if invocation.get("state") == "result":
                tool_part["output"] = invocation.get("result")
            parts.append(tool_part)
        elif part_type == "source":
            source = part["source"]
            parts.append(
                {
                    "type": "source-url",
                    "sourceId": source.get("id", ""),
                    "url": source["url"],
                    "title": source.get("title"),
                }
            )
        elif part_type == "reasoning":
            text = _gen2_reasoning_text(part)
            if not text:
                ctx.dropped("empty_reasoning_dropped", message_id=message.get("id"))
                continue
            parts.append({"type": "reasoning", "text": text})
        elif part_type == "file":
            encoded = _encode_file_data(part.get("data"), ctx, message_id=message.get("id"))
            if encoded is None:
                continue
            file_part = {"type": "file", "url": encoded, "mediaType": part.get("mimeType") or "unknown"}
            if part.get("filename"):
                file_part["filename"] = part["filename"]
            parts.append(file_part)
            file_urls.add(encoded)
        else:
            ctx.dropped("unknown_part_dropped", part_type=part_type, message_id=message.get("id"))

    for attachment in gen2_content.get("experimental_attachments") or []:
        if attachment["url"] in file_urls:
            continue
        file_part = {
            "type": "file",
            "url": attachment["url"],
            "mediaType": attachment.get("contentType") or "unknown",
        }
        if attachment.get("name"):
            file_part["filename"] = attachment["name"]
        parts.append(file_part)

    current: dict[str, Any] = {
        "id": message.get("id"),
        "role": role,
        "createdAt": message.get("createdAt"),
        "threadId": message.get("threadId"),
        "resourceId": message.get("resourceId"),
        "content": {"format": 3, "parts": parts},
    }
    if message.get("type"):
        current["type"] = message["type"]
    return current


# ── external protocol -> current ───────────────────────────────────────────────


def protocol_to_current(message: Mapping[str, Any], ctx: ConversionContext) -> dict[str, Any]:
    """
    Lift a model message (``{role, content}``) to the current generation.

    Tool calls and tool results both become ``tool-invocation`` parts; a
    result carries an empty ``input`` until it is merged onto its call.
    """
    role = canonical_role(message, ctx.provenance)
    source_role = message["role"]
    content = message.get("content")
    parts: list[dict[str, Any]] = []

    if isinstance(content, str):
        parts.append({"type": "text", "text": content})
    else:
        for part in content:
            part_type = part.get("type")
            check_part_allowed(part_type, source_role)
            if part_type == "text":
                parts.append({"type": "text", "text": part.get("text", "")})
            elif part_type == "tool-call":
                parts.append(
                    {
                        "type": "tool-invocation",
                        "toolCallId": part["toolCallId"],
                        "toolName": part["toolName"],
                        "state": "input-available",
                        "input": part.get("input", part.get("args")),
                    }
                )
            elif part_type == "tool-result":
                output = part.get("output", part.get("result"))
                parts.append(
                    {
                        "type": "tool-invocation",
                        "toolCallId": part["toolCallId"],
                        "toolName": part["toolName"],
                        "state": "output-available",
                        "input": {},
                        "output": output if output is not None else "",
                    }
                )
            elif part_type == "reasoning":
                if not part.get("text"):
                    ctx.dropped("empty_reasoning_dropped")
                    continue
                parts.append({"type": "reasoning", "text": part["text"]})
            elif part_type in ("image", "file"):
                data = part.get("image") if part_type == "image" else part.get("data")
                encoded = _encode_file_data(data, ctx, part_type=part_type)
                if encoded is None:
                    continue
                file_part = {
                    "type": "file",
                    "url": encoded,
                    "mediaType": part.get("mediaType") or part.get("mimeType") or "unknown",
                }
                if part.get("filename"):
                    file_part["filename"] = part["filename"]
                parts.append(file_part)
            else:
                ctx.dropped("unknown_part_dropped", part_type=part_type)

    current: dict[str, Any] = {
        "role": role,
        "content": {"format": 3, "parts": parts},
    }
    if message.get("id"):
        current["id"] = message["id"]
    return current


# ── external UI -> current ─────────────────────────────────────────────────────

_METADATA_LIFTED = ("createdAt", "threadId", "resourceId")


def ui_to_current(message: Mapping[str, Any], ctx: ConversionContext) -> dict[str, Any]:
    """Lift a UI message (``{id, role, parts, metadata}``) to the current generation."""
    role = canonical_role(message, ctx.provenance)
    parts = keep_known_parts(list(message.get("parts") or []), ctx)

    for attachment in message.get("experimental_attachments") or []:
        parts.append(
            {
                "type": "file",
                "url": attachment["url"],
                "mediaType": attachment.get("contentType") or "unknown",
            }
        )

    metadata = dict(message.get("metadata") or {})
    created_at = metadata.get("createdAt")
    content: dict[str, Any] = {"format": 3, "parts": parts}
    extra = {k: v for k, v in metadata.items() if k not in _METADATA_LIFTED}
    if extra:
        content["metadata"] = extra

    current: dict[str, Any] = {"role": role, "content": content}
    if message.get("id"):
        current["id"] = message["id"]
    if created_at is not None:
        current["createdAt"] = created_at
    return current


# ── current -> current ─────────────────────────────────────────────────────────


def current_to_current(message: Any, ctx: ConversionContext) -> dict[str, Any]:
    """Copy a current-generation message, dropping parts this version does not know."""
    if isinstance(message, CanonicalMessage):
        message = message.model_dump(by_alias=True)
    canonical_role(message, ctx.provenance)
    copied = dict(message)
    content = dict(copied["content"])
    content["parts"] = keep_known_parts(list(content.get("parts") or []), ctx)
    copied["content"] = content
    return copied


# ── Lookup table and driver ────────────────────────────────────────────────────

UPCONVERTERS: dict[tuple[MessageShape, MessageShape], Adapter] = {
    (MessageShape.GEN1, MessageShape.GEN2): gen1_to_gen2,
    (MessageShape.GEN2, MessageShape.CURRENT): gen2_to_current,
    (MessageShape.EXTERNAL_PROTOCOL, MessageShape.CURRENT): protocol_to_current,
    (MessageShape.EXTERNAL_UI, MessageShape.CURRENT): ui_to_current,
}

NEXT_SHAPE: dict[MessageShape, MessageShape] = {src: dst for src, dst in UPCONVERTERS}


def tool_result_call_ids(message: Any, shape: MessageShape) -> tuple[str, ...]:
    """Return the call ids of standalone tool results in a model message or gen1 row."""
    if shape not in (MessageShape.EXTERNAL_PROTOCOL, MessageShape.GEN1):
        return ()
    content = message.get("content")
    if not isinstance(content, list):
        return ()
    return tuple(
        part["toolCallId"]
        for part in content
        if part.get("type") == "tool-result" and part.get("toolCallId")
    )


_DATETIME = TypeAdapter(datetime)


def _supplied_time(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    # ISO strings and epoch values
    try:
        return _DATETIME.validate_python(value)
    except ValidationError as exc:
        raise MalformedMessageError(f"Unparseable createdAt {value!r}") from exc


def upconvert(message: Any, shape: MessageShape, ctx: ConversionContext) -> ConversionResult:
    """
    Run the adapter chain for ``shape`` and build the canonical message.

    Fills in a generated id when the input has none, sequences ``createdAt``
    through ``ctx.created_at`` and stamps the bound thread/resource on
    messages that do not declare their own.
    """
    result_call_ids = tool_result_call_ids(message, shape)

    current: dict[str, Any]
    if shape is MessageShape.CURRENT:
        current = current_to_current(message, ctx)
    else:
        current = message
        while shape is not MessageShape.CURRENT:
            target = NEXT_SHAPE[shape]
            current = UPCONVERTERS[(shape, target)](current, ctx)
            shape = target

    current = dict(current)
    if not current.get("id"):
        current["id"] = ctx.new_id()
    current["createdAt"] = ctx.created_at(_supplied_time(current.get("createdAt")))
    if not current.get("threadId"):
        current["threadId"] = ctx.thread_id
    if not current.get("resourceId"):
        current["resourceId"] = ctx.resource_id

    return ConversionResult(
        message=CanonicalMessage.model_validate(current),
        tool_result_call_ids=result_call_ids,
    )
