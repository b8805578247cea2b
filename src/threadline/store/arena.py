"""Indexed in-memory arena holding the canonical conversation."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime

from threadline.models.message import CanonicalMessage, Provenance


@dataclass
class StoredMessage:
    """A canonical message together with how it entered the list."""

    message: CanonicalMessage
    provenance: Provenance
    unsaved: bool = False
    """True until the message is handed to persistence by ``drain_unsaved_messages()``."""

    @property
    def id(self) -> str:
        return self.message.id


class MessageArena:
    """
    Ordered message storage with an ``id -> index`` map.

    All mutation goes through explicit indexed operations so an in-place
    merge is visibly an update of ``entries[i]``. The map is rebuilt after
    every sort.
    """

    __slots__ = ("_entries", "_index")

    def __init__(self) -> None:
        self._entries: list[StoredMessage] = []
        self._index: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[StoredMessage]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> StoredMessage:
        return self._entries[index]

    def index_of(self, message_id: str) -> int | None:
        return self._index.get(message_id)

    def get(self, message_id: str) -> StoredMessage | None:
        index = self._index.get(message_id)
        return None if index is None else self._entries[index]

    def latest(self) -> StoredMessage | None:
        return self._entries[-1] if self._entries else None

    def max_created_at(self) -> datetime | None:
        if not self._entries:
            return None
        return max(entry.message.created_at for entry in self._entries)

    def append(self, entry: StoredMessage) -> int:
        self._entries.append(entry)
        self._index[entry.id] = len(self._entries) - 1
        return len(self._entries) - 1

    def replace(self, index: int, entry: StoredMessage) -> None:
        old = self._entries[index]
        if old.id != entry.id:
            self._index.pop(old.id, None)
        self._entries[index] = entry
        self._index[entry.id] = index

    def sort(self) -> None:
        """Stable sort by ``created_at`` ascending."""
        self._entries.sort(key=lambda entry: entry.message.created_at)
        self._index = {entry.id: i for i, entry in enumerate(self._entries)}

    def clear(self) -> None:
        self._entries.clear()
        self._index.clear()
