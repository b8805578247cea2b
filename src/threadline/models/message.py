"""Canonical message and content part models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base for models whose wire form uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump to the camelCase dict shape, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ── Part Models ────────────────────────────────────────────────────────────────


class TextPart(_WireModel):
    """A plain text segment of a message."""

    type: Literal["text"] = "text"
    text: str


class FilePart(_WireModel):
    """
    A file attached to a message.

    ``url`` is either a remote URL, a ``data:`` URI or an inline base64
    payload produced when binary data was ingested.
    """

    type: Literal["file"] = "file"
    url: str
    media_type: str = "unknown"
    filename: str | None = None


class ReasoningPart(_WireModel):
    """Chain-of-thought reasoning text."""

    type: Literal["reasoning"] = "reasoning"
    text: str


class SourceUrlPart(_WireModel):
    """A cited source."""

    type: Literal["source-url"] = "source-url"
    source_id: str
    url: str
    title: str | None = None


class StepStartPart(_WireModel):
    """Boundary marker between agentic steps. Ignored when matching part types."""

    type: Literal["step-start"] = "step-start"


ToolState = Literal["input-streaming", "input-available", "output-available"]


class ToolInvocationPart(_WireModel):
    """
    A tool call and, once available, its result.

    Only one part per ``tool_call_id`` lives in a message; later results
    update ``state`` and ``output`` in place.
    """

    type: Literal["tool-invocation"] = "tool-invocation"
    tool_call_id: str
    tool_name: str
    state: ToolState
    input: Any = None
    output: Any = None

    @property
    def is_resolved(self) -> bool:
        return self.state == "output-available"


# Discriminated union on the ``type`` field.
ContentPart = Annotated[
    TextPart | FilePart | ReasoningPart | SourceUrlPart | StepStartPart | ToolInvocationPart,
    Field(discriminator="type"),
]

# Tool parts in the UI vocabulary are spelled ``tool-<toolName>``.
_NON_TOOL_PREFIXED = frozenset({"tool-invocation"})


def normalize_tool_part(part: Any) -> Any:
    """Rewrite a ``tool-<name>`` part dict into the ``tool-invocation`` shape."""
    if not isinstance(part, dict):
        return part
    part_type = part.get("type")
    if (
        isinstance(part_type, str)
        and part_type.startswith("tool-")
        and part_type not in _NON_TOOL_PREFIXED
    ):
        normalized = {k: v for k, v in part.items() if k != "type"}
        normalized["type"] = "tool-invocation"
        normalized.setdefault("toolName", part_type[len("tool-") :])
        return normalized
    return part


# ── Message Models ─────────────────────────────────────────────────────────────


class MessageContent(_WireModel):
    """Body of a canonical message. ``format`` is the generation discriminator."""

    format: Literal[3] = 3
    parts: list[ContentPart] = Field(default_factory=list)
    metadata: dict[str, Any] | None = None

    @field_validator("parts", mode="before")
    @classmethod
    def _normalize_tool_parts(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [normalize_tool_part(p) for p in value]
        return value


class CanonicalMessage(_WireModel):
    """
    The single current representation every ingested message is converted to.

    ``id`` is unique within a ``MessageList``. ``created_at`` is always
    timezone-aware (UTC).
    """

    id: str
    role: Literal["user", "assistant"]
    created_at: datetime
    thread_id: str | None = None
    resource_id: str | None = None
    type: str | None = None
    content: MessageContent = Field(default_factory=MessageContent)

    @field_validator("created_at", mode="after")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @property
    def parts(self) -> list[ContentPart]:
        return self.content.parts

    def text_content(self) -> str:
        """Concatenate text from all TextPart objects in this message."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def tool_part(self, tool_call_id: str) -> ToolInvocationPart | None:
        """Return the most recent tool part for ``tool_call_id``, if any."""
        for part in reversed(self.parts):
            if isinstance(part, ToolInvocationPart) and part.tool_call_id == tool_call_id:
                return part
        return None


class SystemMessage(_WireModel):
    """An instruction message kept outside the conversation and never reordered."""

    role: Literal["system"] = "system"
    content: str | list[dict[str, Any]]


# ── Tags ───────────────────────────────────────────────────────────────────────


class Provenance(StrEnum):
    """Which pipeline stage produced a message. Used only for filtered views."""

    MEMORY = "memory"
    RESPONSE = "response"
    USER = "user"
    CONTEXT = "context"


class MessageShape(StrEnum):
    """The input shapes the classifier recognises, oldest canonical first."""

    GEN1 = "gen1"
    GEN2 = "gen2"
    CURRENT = "current"
    EXTERNAL_PROTOCOL = "external-protocol"
    EXTERNAL_UI = "external-ui"
