"""Merge engine: integrates canonical messages into the arena."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

import structlog

from threadline.fingerprint import fingerprint_part, fingerprint_parts, messages_are_equal
from threadline.models.message import (
    CanonicalMessage,
    ContentPart,
    Provenance,
    StepStartPart,
    ToolInvocationPart,
)
from threadline.store.arena import MessageArena, StoredMessage

# Provenances whose messages must be handed to persistence.
UNSAVED_PROVENANCES: frozenset[Provenance] = frozenset({Provenance.USER, Provenance.RESPONSE})

_TOOL_STATE_RANK = {"input-streaming": 0, "input-available": 1, "output-available": 2}


class MergeAction(StrEnum):
    INSERTED = "inserted"
    REPLACED = "replaced"
    APPENDED = "appended"
    SKIPPED = "skipped"


class SkipReason(StrEnum):
    DUPLICATE = "duplicate"
    MEMORY_DUPLICATE = "memory_duplicate"
    ORPHAN_TOOL_RESULT = "orphan_tool_result"


@dataclass(frozen=True)
class MergeOutcome:
    """What ``MergeEngine.integrate()`` did with one message."""

    action: MergeAction
    message_id: str
    """ID of the stored message affected (the merge target for APPENDED)."""
    reason: SkipReason | None = None
    dropped_tool_results: tuple[str, ...] = ()
    """Call ids of tool results discarded because no stored call matched them."""


def _substantive(parts: list[ContentPart]) -> list[ContentPart]:
    return [p for p in parts if not isinstance(p, StepStartPart)]


def _last_tool_index(parts: list[ContentPart], tool_call_id: str) -> int | None:
    for index in range(len(parts) - 1, -1, -1):
        part = parts[index]
        if isinstance(part, ToolInvocationPart) and part.tool_call_id == tool_call_id:
            return index
    return None


class MergeEngine:
    """
    Decides how each incoming canonical message lands in the arena.

    Decision sequence:
    1. Same ``id`` already stored: equal fingerprint -> skip, otherwise the
       stored index is flagged for replacement.
    2. Memory replay whose fingerprint matches a stored message -> skip.
    3. An input holding only standalone tool results, none of which matches
       a call in the latest assistant message -> skip.
    4. Latest and incoming are assistant messages on the same thread and the
       incoming first part type-matches the latest's last part -> append.
       Standalone results without a matching call are dropped.
    5. Otherwise replace at the flagged index, or insert. Standalone results
       whose call is not in the latest message are dropped first.

    The arena is re-sorted by ``created_at`` after every change.
    """

    def __init__(self, arena: MessageArena) -> None:
        self._arena = arena
        self._logger = structlog.get_logger("threadline.merge")

    def integrate(
        self,
        message: CanonicalMessage,
        provenance: Provenance,
        *,
        tool_result_call_ids: Sequence[str] = (),
    ) -> MergeOutcome:
        """
        Integrate one canonical message.

        Args:
            message: The upconverted message. Ownership passes to the arena.
            provenance: How the message was added.
            tool_result_call_ids: Call ids of the input's standalone
                ``tool-result`` parts. Only these can be orphans; a tool part
                that carries its own call is never dropped.

        Returns:
            MergeOutcome describing the action taken.
        """
        # Step 1: identity
        replace_index: int | None = None
        existing = self._arena.get(message.id)
        if existing is not None:
            if messages_are_equal(existing.message, message):
                return self._skip(message.id, SkipReason.DUPLICATE)
            replace_index = self._arena.index_of(message.id)

        # Step 2: memory replay never duplicates history
        if provenance is Provenance.MEMORY and self._has_memory_duplicate(message):
            return self._skip(message.id, SkipReason.MEMORY_DUPLICATE)

        # Step 3: results must attach to an in-flight call
        latest = self._arena.latest()
        standalone = frozenset(tool_result_call_ids)
        if self._is_orphan_result(message, latest, standalone):
            return self._skip(
                message.id, SkipReason.ORPHAN_TOOL_RESULT, dropped=tuple(tool_result_call_ids)
            )

        # Step 4: append onto the latest assistant message
        if latest is not None and self._should_append(latest, message):
            dropped = self._append_parts(latest, message, provenance, standalone)
            self._arena.sort()
            self._logger.debug("message_appended", target_id=latest.id, source_id=message.id)
            return MergeOutcome(MergeAction.APPENDED, latest.id, dropped_tool_results=dropped)

        # Step 5: insert or replace
        dropped = self._drop_unmatched_results(message, latest, standalone)
        entry = StoredMessage(message, provenance, unsaved=provenance in UNSAVED_PROVENANCES)
        if replace_index is not None:
            self._arena.replace(replace_index, entry)
            action = MergeAction.REPLACED
        else:
            self._arena.append(entry)
            action = MergeAction.INSERTED
        self._arena.sort()
        self._logger.debug(
            "message_integrated",
            action=str(action),
            message_id=message.id,
            provenance=str(provenance),
        )
        return MergeOutcome(action, message.id, dropped_tool_results=dropped)

    # ── decisions ──────────────────────────────────────────────────────────────

    def _skip(
        self, message_id: str, reason: SkipReason, dropped: tuple[str, ...] = ()
    ) -> MergeOutcome:
        self._logger.debug("message_skipped", message_id=message_id, reason=str(reason))
        return MergeOutcome(MergeAction.SKIPPED, message_id, reason, dropped)

    def _has_memory_duplicate(self, message: CanonicalMessage) -> bool:
        key = fingerprint_parts(message.parts)
        for entry in self._arena:
            stored = entry.message
            if (
                stored.role == message.role
                and stored.thread_id == message.thread_id
                and fingerprint_parts(stored.parts) == key
            ):
                return True
        return False

    def _is_orphan_result(
        self, message: CanonicalMessage, latest: StoredMessage | None, standalone: frozenset[str]
    ) -> bool:
        """True when ``message`` holds only standalone results and none has a call in ``latest``."""
        if not standalone:
            return False
        parts = _substantive(message.parts)
        if not all(isinstance(p, ToolInvocationPart) and p.tool_call_id in standalone for p in parts):
            return False
        return not any(self._has_open_call(latest, p.tool_call_id) for p in parts)

    @staticmethod
    def _has_open_call(latest: StoredMessage | None, tool_call_id: str) -> bool:
        if latest is None or latest.message.role != "assistant":
            return False
        return latest.message.tool_part(tool_call_id) is not None

    @staticmethod
    def _should_append(latest: StoredMessage, incoming: CanonicalMessage) -> bool:
        stored = latest.message
        if stored.role != "assistant" or incoming.role != "assistant":
            return False
        if stored.thread_id != incoming.thread_id:
            return False

        incoming_parts = _substantive(incoming.parts)
        if not incoming_parts:
            return False
        first = incoming_parts[0]
        stored_parts = _substantive(stored.parts)
        last_type = stored_parts[-1].type if stored_parts else None

        # Tool parts join any run that does not end in text; everything else
        # only joins a run of its own type.
        if isinstance(first, ToolInvocationPart):
            return last_type != "text"
        return first.type == last_type

    # ── mutation ───────────────────────────────────────────────────────────────

    def _append_parts(
        self,
        latest: StoredMessage,
        incoming: CanonicalMessage,
        provenance: Provenance,
        standalone: frozenset[str],
    ) -> tuple[str, ...]:
        target = latest.message
        parts = target.content.parts
        dropped: list[str] = []

        for index, part in enumerate(incoming.parts):
            if isinstance(part, ToolInvocationPart):
                existing_index = _last_tool_index(parts, part.tool_call_id)
                if existing_index is not None:
                    parts[existing_index] = self._advance_tool_part(parts[existing_index], part)
                    continue
                if part.is_resolved and part.tool_call_id in standalone:
                    # a result without its call cannot be replayed to a model
                    dropped.append(part.tool_call_id)
                    continue
            if index >= len(parts) or fingerprint_part(parts[index]) != fingerprint_part(part):
                parts.append(part)

        if incoming.created_at > target.created_at:
            target.created_at = incoming.created_at
        if provenance in UNSAVED_PROVENANCES:
            latest.unsaved = True
        return tuple(dropped)

    def _drop_unmatched_results(
        self, message: CanonicalMessage, latest: StoredMessage | None, standalone: frozenset[str]
    ) -> tuple[str, ...]:
        """Remove standalone tool results whose call is not in ``latest``."""
        if not standalone:
            return ()
        kept: list[ContentPart] = []
        dropped: list[str] = []
        for part in message.parts:
            if (
                isinstance(part, ToolInvocationPart)
                and part.tool_call_id in standalone
                and not self._has_open_call(latest, part.tool_call_id)
            ):
                dropped.append(part.tool_call_id)
                continue
            kept.append(part)
        message.content.parts = kept
        return tuple(dropped)

    @staticmethod
    def _advance_tool_part(
        existing: ToolInvocationPart, incoming: ToolInvocationPart
    ) -> ToolInvocationPart:
        """Move a stored tool part forward to ``incoming``'s state; never backward."""
        if _TOOL_STATE_RANK[incoming.state] < _TOOL_STATE_RANK[existing.state]:
            return existing
        update: dict[str, object] = {"state": incoming.state}
        if incoming.input:
            update["input"] = incoming.input
        if incoming.state == "output-available":
            update["output"] = incoming.output
        return existing.model_copy(update=update)
