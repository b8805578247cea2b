"""In-process pub/sub event bus for message list changes."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

import structlog

Handler = Callable[["ThreadlineEvent", dict[str, Any]], None | Awaitable[None]]


class ThreadlineEvent(StrEnum):
    """Events a ``MessageList`` publishes. Payload types are in :mod:`threadline.events.payloads`."""

    MESSAGE_INSERTED = "message.inserted"
    MESSAGE_REPLACED = "message.replaced"
    MESSAGE_APPENDED = "message.appended"
    MESSAGE_SKIPPED = "message.skipped"

    SYSTEM_MESSAGE_ADDED = "system_message.added"

    MESSAGES_DRAINED = "messages.drained"


class EventBus:
    """
    Fans out ``MessageList`` events to subscribed handlers.

    Handlers take ``(event, payload)``. Plain functions run before
    ``publish()`` returns. Coroutine functions become tasks on the running
    loop; the bus holds a reference to each task until it finishes. With no
    running loop the coroutine is closed without being awaited. A failing
    handler is logged as ``event_handler_error`` and never reaches the caller.
    """

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self._handlers: dict[ThreadlineEvent, list[Handler]] = {}
        self._global_handlers: list[Handler] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._logger = logger or structlog.get_logger("threadline.events")

    def subscribe(self, event: ThreadlineEvent, handler: Handler) -> None:
        """Call ``handler`` for every ``event`` published from now on."""
        self._handlers.setdefault(event, []).append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        self._global_handlers.append(handler)

    def unsubscribe(self, event: ThreadlineEvent, handler: Handler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: ThreadlineEvent, payload: dict[str, Any]) -> None:
        for handler in [*self._handlers.get(event, []), *self._global_handlers]:
            try:
                result = handler(event, payload)
            except Exception as exc:
                self._log_failure(event, handler, exc)
                continue
            if asyncio.iscoroutine(result):
                self._schedule(event, handler, result)

    def _schedule(self, event: ThreadlineEvent, handler: Handler, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return
        task = loop.create_task(coro)
        self._tasks.add(task)

        def _done(finished: asyncio.Task[Any]) -> None:
            self._tasks.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                self._log_failure(event, handler, finished.exception())

        task.add_done_callback(_done)

    def _log_failure(self, event: ThreadlineEvent, handler: Handler, exc: BaseException) -> None:
        self._logger.error(
            "event_handler_error",
            event=str(event),
            handler=getattr(handler, "__qualname__", repr(handler)),
            error=str(exc),
        )
