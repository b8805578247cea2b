"""Exception hierarchy for the message reconciliation engine."""

from __future__ import annotations

import json
from typing import Any


def _dump(message: Any) -> str:
    try:
        return json.dumps(message, indent=2, default=str)
    except (TypeError, ValueError):
        return repr(message)


class ThreadlineError(Exception):
    """Base class for all threadline errors."""


# ── Malformed input ────────────────────────────────────────────────────────────


class MalformedMessageError(ThreadlineError):
    """Raised when an input message cannot be interpreted. Never retried."""


class UnhandledMessageShapeError(MalformedMessageError):
    """Raised when a message matches none of the supported shapes."""

    def __init__(self, message: Any) -> None:
        super().__init__(f"Found unhandled message shape:\n{_dump(message)}")
        self.message = message


class UnhandledRoleError(MalformedMessageError):
    """Raised when a non-system message has a role other than user, assistant or tool."""

    def __init__(self, role: Any, message: Any = None) -> None:
        super().__init__(f"Unhandled message role {role!r} in message:\n{_dump(message)}")
        self.role = role
        self.message = message


class SystemMessageRoutingError(MalformedMessageError):
    """
    Raised when a system message reaches the conversation message path.

    System messages are stored separately via ``MessageList.add_system()``.
    Only plain model-message system entries are rerouted there automatically.
    """

    def __init__(self, message: Any, provenance: str | None = None) -> None:
        super().__init__(
            "A system message was added through the conversation message path "
            f"(provenance={provenance!r}). Use add_system() instead:\n{_dump(message)}"
        )
        self.message = message
        self.provenance = provenance


# ── Cross-context mismatch ─────────────────────────────────────────────────────


class ContextMismatchError(ThreadlineError):
    """Raised when a non-memory message belongs to a different thread or resource."""

    kind = "context"

    def __init__(self, received: str, expected: str) -> None:
        super().__init__(
            f"Received input message with wrong {self.kind}Id. "
            f"Input {received!r}, expected {expected!r}"
        )
        self.received = received
        self.expected = expected


class ThreadMismatchError(ContextMismatchError):
    kind = "thread"


class ResourceMismatchError(ContextMismatchError):
    kind = "resource"


# ── Incompatible content ───────────────────────────────────────────────────────


class IncompatibleContentError(ThreadlineError):
    """Raised when a message carries a part type its role cannot carry."""

    def __init__(self, part_type: str, role: str) -> None:
        super().__init__(f"Content part of type {part_type!r} is not allowed in a {role!r} message")
        self.part_type = part_type
        self.role = role
