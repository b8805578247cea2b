"""Structural classification of incoming messages."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from threadline.errors import UnhandledMessageShapeError
from threadline.models.message import CanonicalMessage, MessageShape


def _content_format(message: Mapping[str, Any]) -> Any:
    content = message.get("content")
    if isinstance(content, Mapping):
        return content.get("format")
    return None


def classify(message: Any) -> MessageShape:
    """
    Determine which supported shape ``message`` has.

    The shapes overlap, so the checks run in a fixed order:

    1. ``content`` is an object with ``format == 3`` -> current generation.
    2. ``content`` is an object with ``format == 2`` -> gen2.
    3. no ``parts`` and no format object, but ``threadId``/``resourceId`` -> gen1.
    4. a ``parts`` list -> external UI message.
    5. a string or list ``content`` -> external protocol (model) message.

    Raises:
        UnhandledMessageShapeError: If no rule matches.
    """
    if isinstance(message, CanonicalMessage):
        return MessageShape.CURRENT
    if not isinstance(message, Mapping):
        raise UnhandledMessageShapeError(message)

    content_format = _content_format(message)
    if content_format == 3:
        return MessageShape.CURRENT
    if content_format == 2:
        return MessageShape.GEN2

    if "parts" not in message and ("threadId" in message or "resourceId" in message):
        return MessageShape.GEN1

    if isinstance(message.get("parts"), list):
        return MessageShape.EXTERNAL_UI

    if isinstance(message.get("content"), str | list):
        return MessageShape.EXTERNAL_PROTOCOL

    raise UnhandledMessageShapeError(message)
