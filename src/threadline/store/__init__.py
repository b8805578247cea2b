"""In-memory message storage."""

from threadline.store.arena import MessageArena, StoredMessage

__all__ = ["MessageArena", "StoredMessage"]
