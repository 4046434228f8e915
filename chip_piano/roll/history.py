"""Capacity-bounded, insertion-ordered log of piano-roll note events."""

from __future__ import annotations
from collections import deque
from typing import Deque, Iterator, List, Optional

from ..logger import get_logger
from ..note_types import NoteEvent

logger = get_logger(__name__)


class TrackerInvariantError(RuntimeError):
    """A note-tracking invariant was broken. Always a programming error."""


class HistoryLog:
    """FIFO note history that never drops a note while it is still sounding.

    When an append pushes the log past its capacity, the oldest *closed*
    event is evicted. Open events are skipped over, so a long sustained note
    survives until it closes. At most one event per channel is open, so with
    a capacity larger than the channel count a closed event always exists.
    """

    DEFAULT_CAPACITY = 2000

    def __init__(self, capacity: Optional[int] = DEFAULT_CAPACITY) -> None:
        """Initialize the log.

        Args:
            capacity: Maximum number of events, or None for an unbounded log
        """
        if capacity is not None and capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._events: Deque[NoteEvent] = deque()

    @property
    def capacity(self) -> Optional[int]:
        return self._capacity

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[NoteEvent]:
        return iter(self._events)

    def append(self, event: NoteEvent) -> Optional[NoteEvent]:
        """Append an event, evicting the oldest closed one if over capacity.

        Returns:
            The evicted event, if any

        Raises:
            TrackerInvariantError: If the log is full of open events
        """
        self._events.append(event)
        if self._capacity is None or len(self._events) <= self._capacity:
            return None
        evicted = self._evict_oldest_closed()
        logger.debug(
            f"Evicted ch{evicted.channel} note {evicted.note} @ {evicted.start_time:.3f}s"
        )
        return evicted

    def _evict_oldest_closed(self) -> NoteEvent:
        for index, event in enumerate(self._events):
            if not event.active:
                break
        else:
            raise TrackerInvariantError(
                f"History over capacity ({self._capacity}) with every event still open"
            )
        if index == 0:
            return self._events.popleft()
        del self._events[index]
        return event

    def clear(self) -> None:
        self._events.clear()

    def open_events(self) -> List[NoteEvent]:
        return [event for event in self._events if event.active]

    def visible(self, start: float, now: float) -> List[NoteEvent]:
        """Events overlapping the window [start, now], oldest first."""
        return [
            event
            for event in self._events
            if event.start_time <= now and event.end_time(now) >= start
        ]
