"""MessageList: the single ingestion point for conversation messages."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any

import structlog
from ulid import ULID

from threadline.classify import classify
from threadline.convert.context import ConversionContext
from threadline.convert.external import content_to_text
from threadline.convert.upgrade import upconvert
from threadline.errors import (
    ResourceMismatchError,
    SystemMessageRoutingError,
    ThreadMismatchError,
    UnhandledRoleError,
)
from threadline.events.bus import EventBus, ThreadlineEvent
from threadline.fingerprint import fingerprint_content
from threadline.merge import (
    UNSAVED_PROVENANCES,
    MergeAction,
    MergeEngine,
    MergeOutcome,
)
from threadline.models.config import MessageListConfig
from threadline.models.message import (
    CanonicalMessage,
    MessageShape,
    Provenance,
    SystemMessage,
)
from threadline.sequencer import TimestampSequencer
from threadline.store.arena import MessageArena
from threadline.views import MessageViews

MessageInput = Mapping[str, Any] | CanonicalMessage | str
SystemInput = SystemMessage | Mapping[str, Any] | str


def make_id(prefix: str) -> str:
    """
    Generate a ULID-based sortable identifier.

    Args:
        prefix: Short prefix for readability (e.g. ``"msg"``).

    Returns:
        ID string in the format ``"{prefix}_{ulid}"``.
    """
    return f"{prefix}_{ULID()}"


class MessageList:
    """
    Canonical in-memory conversation for one agent run.

    Every message, whatever its shape, enters through :meth:`add` with a
    provenance tag. It is classified, upconverted to the canonical form,
    given a monotonic ``created_at`` and merged into the store. Views are
    read through :attr:`get`.

    The list is synchronous and not safe for concurrent mutation; funnel all
    ``add()`` calls through one task.

    Usage::

        messages = MessageList(thread_id="thread_1", resource_id="user_42")
        messages.add_system("You are a helpful assistant.")
        messages.add(history_rows, "memory")
        messages.add("What's the weather in Paris?", "user")
        messages.add(
            {"role": "assistant", "content": [{"type": "tool-call", "toolCallId": "c1",
                                               "toolName": "weather", "input": {"city": "Paris"}}]},
            "response",
        )
        messages.add(
            {"role": "tool", "content": [{"type": "tool-result", "toolCallId": "c1",
                                          "toolName": "weather", "output": "18C"}]},
            "response",
        )

        prompt = messages.get.prompt()
        to_save = messages.drain_unsaved_messages()
    """

    def __init__(
        self,
        config: MessageListConfig | None = None,
        *,
        thread_id: str | None = None,
        resource_id: str | None = None,
        generate_message_id: Callable[[], str] | None = None,
        event_bus: EventBus | None = None,
        sequencer: TimestampSequencer | None = None,
    ) -> None:
        if config is None:
            config = MessageListConfig(thread_id=thread_id, resource_id=resource_id)
        self._config = config
        self._generate_message_id = generate_message_id
        self._event_bus = event_bus or EventBus()
        self._sequencer = sequencer or TimestampSequencer()
        self._arena = MessageArena()
        self._merge = MergeEngine(self._arena)
        self._system: list[SystemMessage] = []
        self._tagged_system: dict[str, list[SystemMessage]] = {}
        self._views = MessageViews(self._arena, self.all_system_messages)
        self._logger = structlog.get_logger("threadline.message_list").bind(
            thread_id=config.thread_id
        )

    # ── Properties ─────────────────────────────────────────────────────────────

    @property
    def config(self) -> MessageListConfig:
        return self._config

    @property
    def event_bus(self) -> EventBus:
        """The EventBus for this list. Subscribe to monitor merges and skips."""
        return self._event_bus

    @property
    def get(self) -> MessageViews:
        """Named projections: ``all``, ``remembered``, ``input``, ``response``, ``context``."""
        return self._views

    def __len__(self) -> int:
        return len(self._arena)

    def __iter__(self) -> Iterator[CanonicalMessage]:
        return iter(self._views.all.current_gen())

    # ── Ingestion ──────────────────────────────────────────────────────────────

    def add(
        self,
        messages: MessageInput | list[MessageInput],
        provenance: Provenance | str,
    ) -> MessageList:
        """
        Add one or more messages of any supported shape.

        A bare string is a user text message. A model-message ``system`` entry
        is rerouted to :meth:`add_system`.

        Args:
            messages: A message, a string, or a list of either.
            provenance: ``"memory"``, ``"response"``, ``"user"`` or ``"context"``.

        Returns:
            self, for chaining.

        Raises:
            MalformedMessageError: Unrecognised shape or role.
            ContextMismatchError: A non-memory message names another thread/resource.
            IncompatibleContentError: A part type the message's role cannot carry.
        """
        provenance = Provenance(provenance)
        batch = messages if isinstance(messages, list | tuple) else [messages]
        for message in batch:
            if isinstance(message, str):
                message = {"role": "user", "content": message}
            self._add_one(message, provenance)
        return self

    def _add_one(self, message: Mapping[str, Any] | CanonicalMessage, provenance: Provenance) -> None:
        shape = classify(message)

        if isinstance(message, Mapping) and message.get("role") == "system":
            if shape is MessageShape.EXTERNAL_PROTOCOL:
                self.add_system(message)
                return
            raise SystemMessageRoutingError(dict(message), str(provenance))

        if provenance is not Provenance.MEMORY:
            self._check_context(message)

        ctx = ConversionContext(
            provenance=provenance,
            new_id=self._new_message_id,
            created_at=lambda supplied: self._sequencer.next(
                provenance, supplied, self._arena.max_created_at()
            ),
            thread_id=self._config.thread_id,
            resource_id=self._config.resource_id,
            warn_on_drop=self._config.warn_on_dropped_parts,
        )
        result = upconvert(message, shape, ctx)
        outcome = self._merge.integrate(
            result.message,
            provenance,
            tool_result_call_ids=result.tool_result_call_ids,
        )
        for call_id in outcome.dropped_tool_results:
            ctx.dropped("orphan_tool_result_dropped", tool_call_id=call_id)
        self._publish(outcome, result.message, provenance)

    def _check_context(self, message: Mapping[str, Any] | CanonicalMessage) -> None:
        if isinstance(message, CanonicalMessage):
            thread_id, resource_id = message.thread_id, message.resource_id
        else:
            thread_id, resource_id = message.get("threadId"), message.get("resourceId")

        bound_thread = self._config.thread_id
        if thread_id and bound_thread and thread_id != bound_thread:
            raise ThreadMismatchError(thread_id, bound_thread)
        bound_resource = self._config.resource_id
        if resource_id and bound_resource and resource_id != bound_resource:
            raise ResourceMismatchError(resource_id, bound_resource)

    def _new_message_id(self) -> str:
        if self._generate_message_id is not None:
            return self._generate_message_id()
        return make_id(self._config.id_prefix)

    def _publish(self, outcome: MergeOutcome, message: CanonicalMessage, provenance: Provenance) -> None:
        if outcome.action is MergeAction.SKIPPED:
            self._event_bus.publish(
                ThreadlineEvent.MESSAGE_SKIPPED,
                {
                    "message_id": outcome.message_id,
                    "provenance": str(provenance),
                    "reason": str(outcome.reason),
                },
            )
        elif outcome.action is MergeAction.APPENDED:
            self._event_bus.publish(
                ThreadlineEvent.MESSAGE_APPENDED,
                {
                    "message_id": outcome.message_id,
                    "source_id": message.id,
                    "provenance": str(provenance),
                },
            )
        else:
            event = (
                ThreadlineEvent.MESSAGE_INSERTED
                if outcome.action is MergeAction.INSERTED
                else ThreadlineEvent.MESSAGE_REPLACED
            )
            self._event_bus.publish(
                event,
                {"message_id": message.id, "role": message.role, "provenance": str(provenance)},
            )

    # ── System messages ────────────────────────────────────────────────────────

    def add_system(
        self,
        messages: SystemInput | list[SystemInput] | None,
        tag: str | None = None,
    ) -> MessageList:
        """
        Add system messages, globally or under ``tag``.

        Messages whose content fingerprint already exists in the same
        namespace are ignored. ``None`` is a no-op.
        """
        if not messages:
            return self
        batch = messages if isinstance(messages, list | tuple) else [messages]
        for message in batch:
            self._add_one_system(self._to_system_message(message), tag)
        return self

    @staticmethod
    def _to_system_message(message: SystemInput) -> SystemMessage:
        if isinstance(message, SystemMessage):
            return message.model_copy(deep=True)
        if isinstance(message, str):
            return SystemMessage(content=message)
        if message.get("role") != "system":
            raise UnhandledRoleError(message.get("role"), dict(message))
        return SystemMessage.model_validate(message)

    def _add_one_system(self, message: SystemMessage, tag: str | None) -> None:
        bucket = self._tagged_system.setdefault(tag, []) if tag else self._system
        key = fingerprint_content(message.content)
        if any(fingerprint_content(existing.content) == key for existing in bucket):
            return
        bucket.append(message)
        self._event_bus.publish(ThreadlineEvent.SYSTEM_MESSAGE_ADDED, {"tag": tag})

    def get_system_messages(self, tag: str | None = None) -> list[SystemMessage]:
        """Return the system messages under ``tag``, or the global ones when no tag is given."""
        if tag:
            return list(self._tagged_system.get(tag, []))
        return list(self._system)

    def all_system_messages(self) -> list[SystemMessage]:
        """Global system messages followed by every tagged namespace in insertion order."""
        tagged = [m for bucket in self._tagged_system.values() for m in bucket]
        return [*self._system, *tagged]

    # ── Persistence hand-off ───────────────────────────────────────────────────

    def drain_unsaved_messages(self) -> list[CanonicalMessage]:
        """
        Return user/response messages added or changed since the last drain.

        The returned messages are copies in store order. Their provenance is
        kept, so ``get.input``/``get.response`` are unaffected.
        """
        drained = [
            entry
            for entry in self._arena
            if entry.unsaved and entry.provenance in UNSAVED_PROVENANCES
        ]
        for entry in drained:
            entry.unsaved = False
        messages = [entry.message.model_copy(deep=True) for entry in drained]
        if messages:
            self._logger.debug("messages_drained", count=len(messages))
            self._event_bus.publish(
                ThreadlineEvent.MESSAGES_DRAINED, {"message_ids": [m.id for m in messages]}
            )
        return messages

    # ── Convenience ────────────────────────────────────────────────────────────

    def get_latest_user_content(self) -> str | None:
        """Text of the most recent user message in the model projection, or None."""
        user_messages = [m for m in self._views.all.external_model_input() if m["role"] == "user"]
        if not user_messages:
            return None
        return content_to_text(user_messages[-1]["content"]) or None
