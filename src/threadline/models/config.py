"""Configuration models for a MessageList."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class MessageListConfig(BaseModel):
    """
    Configuration for a single ``MessageList``.

    Binding a thread makes the list reject non-memory input that declares a
    different ``threadId``/``resourceId``, and stamps externally-shaped input
    with the bound ids.

    Example::

        config = MessageListConfig(thread_id="thread_1", resource_id="user_42")
        messages = MessageList(config)
    """

    thread_id: str | None = Field(
        default=None,
        description="Thread the list is bound to. None = unbound, no thread checks.",
    )

    resource_id: str | None = Field(
        default=None,
        description="Resource (user/tenant) the list is bound to. Requires thread_id.",
    )

    id_prefix: str = Field(
        default="msg",
        min_length=1,
        description="Prefix for generated message IDs, e.g. ``msg_01JXYZ...``.",
    )

    warn_on_dropped_parts: bool = True
    """Log silently dropped parts and orphan tool results at warning level instead of debug."""

    @model_validator(mode="after")
    def validate_binding(self) -> MessageListConfig:
        if self.resource_id is not None and self.thread_id is None:
            raise ValueError("resource_id requires thread_id to be set")
        return self

    @classmethod
    def default(cls) -> MessageListConfig:
        """Return a config instance with all defaults."""
        return cls()
