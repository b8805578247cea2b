"""Per-call state shared by the converter functions."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from threadline.models.message import CanonicalMessage, Provenance


@dataclass
class ConversionContext:
    """
    Everything an upconversion needs beyond the message itself.

    The adapters stay pure: identifiers and creation times are only filled in
    by :func:`threadline.convert.upgrade.upconvert` through ``new_id`` and
    ``created_at``.
    """

    provenance: Provenance
    new_id: Callable[[], str]
    created_at: Callable[[datetime | None], datetime]
    thread_id: str | None = None
    resource_id: str | None = None
    warn_on_drop: bool = True
    logger: Any = field(default_factory=lambda: structlog.get_logger("threadline.convert"))

    def dropped(self, event: str, **kw: Any) -> None:
        """Record a silently dropped part or message."""
        if self.warn_on_drop:
            self.logger.warning(event, provenance=str(self.provenance), **kw)
        else:
            self.logger.debug(event, provenance=str(self.provenance), **kw)


@dataclass
class ConversionResult:
    """A canonical message plus facts about the input it came from."""

    message: CanonicalMessage
    tool_result_call_ids: tuple[str, ...] = ()
    """Call ids of standalone ``tool-result`` parts in a model message or gen1 row."""
