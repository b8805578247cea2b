"""Creation-time assignment with strict monotonic ordering."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from threadline.models.message import Provenance

# Smallest step between two sequenced messages.
TICK = timedelta(milliseconds=1)


def utc_now() -> datetime:
    """Current UTC time truncated to whole milliseconds."""
    now = datetime.now(UTC)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


class TimestampSequencer:
    """
    Assigns ``created_at`` so messages added in call order sort in call order.

    Rules:
    1. The first caller-supplied time seen becomes the baseline, verbatim.
    2. Memory-sourced messages keep a supplied time verbatim; replayed
       history is never reordered.
    3. Otherwise the candidate is the supplied time or ``now``. If it is not
       strictly later than ``max(high-water mark, latest stored message)``,
       the result is that maximum plus one millisecond.

    Example::

        seq = TimestampSequencer()
        a = seq.next(Provenance.USER)
        b = seq.next(Provenance.USER)
        assert b > a
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._high_water: datetime | None = None

    @property
    def high_water(self) -> datetime | None:
        return self._high_water

    def next(
        self,
        provenance: Provenance,
        supplied: datetime | None = None,
        latest_stored: datetime | None = None,
    ) -> datetime:
        """
        Return the creation time for the next message.

        Args:
            provenance: How the message is being added.
            supplied: Creation time carried by the input, if any.
            latest_stored: Greatest ``created_at`` currently in the store.
        """
        if supplied is not None and supplied.tzinfo is None:
            supplied = supplied.replace(tzinfo=UTC)

        if supplied is not None and self._high_water is None:
            self._high_water = supplied
            return supplied

        if supplied is not None and provenance is Provenance.MEMORY:
            return supplied

        candidate = supplied if supplied is not None else self._clock()
        last_known = self._high_water
        if latest_stored is not None and (last_known is None or latest_stored > last_known):
            last_known = latest_stored

        if last_known is not None and candidate <= last_known:
            bumped = last_known + TICK
            self._high_water = bumped
            return bumped

        self._high_water = candidate
        return candidate
