"""Read-only projections of the message arena."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from threadline.convert.downgrade import to_gen1, to_gen2
from threadline.convert.external import to_external_model_messages, to_external_ui
from threadline.models.message import CanonicalMessage, Provenance, SystemMessage
from threadline.store.arena import MessageArena, StoredMessage

EntryFilter = Callable[[StoredMessage], bool]


class MessageView:
    """
    One filtered projection of the arena.

    Every accessor recomputes from the arena on each call and returns fresh
    objects, so callers may mutate the results freely.
    """

    def __init__(self, arena: MessageArena, keep: EntryFilter) -> None:
        self._arena = arena
        self._keep = keep

    def _selected(self) -> list[CanonicalMessage]:
        return [entry.message for entry in self._arena if self._keep(entry)]

    def __len__(self) -> int:
        return sum(1 for entry in self._arena if self._keep(entry))

    def current_gen(self) -> list[CanonicalMessage]:
        """Canonical messages (deep copies) in ``created_at`` order."""
        return [m.model_copy(deep=True) for m in self._selected()]

    def prior_gen(self) -> list[dict[str, Any]]:
        """Messages in the prior (``format: 2``) storage shape."""
        return [to_gen2(m) for m in self._selected()]

    def oldest_gen(self) -> list[dict[str, Any]]:
        """Messages in the oldest storage shape; assistant turns split at tool calls."""
        return to_gen1(self.prior_gen())

    def external_model_input(self) -> list[dict[str, Any]]:
        """Sanitized model input: unresolved tool calls and empty messages removed."""
        return to_external_model_messages(self._selected())

    def external_ui(self) -> list[dict[str, Any]]:
        """UI messages with ``tool-<name>`` parts and timestamps in metadata."""
        return [to_external_ui(m) for m in self._selected()]


def _by_provenance(provenance: Provenance) -> EntryFilter:
    return lambda entry: entry.provenance is provenance


class MessageViews:
    """
    The named projections returned by ``MessageList.get``.

    ``all`` covers every stored message; ``remembered``, ``input``,
    ``response`` and ``context`` filter by provenance.
    """

    def __init__(
        self,
        arena: MessageArena,
        system_messages: Callable[[], list[SystemMessage]],
    ) -> None:
        self._system_messages = system_messages
        self.all = MessageView(arena, lambda entry: True)
        self.remembered = MessageView(arena, _by_provenance(Provenance.MEMORY))
        self.input = MessageView(arena, _by_provenance(Provenance.USER))
        self.response = MessageView(arena, _by_provenance(Provenance.RESPONSE))
        self.context = MessageView(arena, _by_provenance(Provenance.CONTEXT))

    def prompt(self) -> list[dict[str, Any]]:
        """System messages (global, then tagged) followed by the sanitized model input."""
        system = [m.to_wire() for m in self._system_messages()]
        return system + self.all.external_model_input()
