"""Per-channel note edge detection.

Each channel is a two-state machine, Silent or Sounding(note), driven by one
:class:`Observation` per update tick:

==========================  ==========================================
Transition                  Effect
==========================  ==========================================
Silent -> Sounding(n)       open a NoteEvent, append it to the history
Sounding(n) -> Sounding(n)  refresh ChannelState.velocity only
Sounding(n) -> Sounding(m)  close n, open m (a glide is two events)
Sounding(n) -> Silent       close n, clear the channel
==========================  ==========================================

An observation whose velocity does not exceed the threshold counts as
silence, whatever note it carries.
"""

from __future__ import annotations
import dataclasses
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..logger import get_logger
from ..note_types import ChannelState, NoteEvent, Observation
from ..core.events import NoteTransitionType
from ..detection.classifiers import VELOCITY_THRESHOLD
from .history import HistoryLog, TrackerInvariantError

logger = get_logger(__name__)

__all__ = ["NoteTracker", "NoteTransition", "TrackerInvariantError"]


@dataclass(frozen=True)
class NoteTransition:
    """A note-on or note-off edge, carrying a copy of the affected event."""

    kind: NoteTransitionType
    event: NoteEvent


class NoteTracker:
    """Turns per-tick observations into note events for a fixed set of channels."""

    def __init__(
        self,
        channel_count: int,
        history: HistoryLog,
        velocity_threshold: float = VELOCITY_THRESHOLD,
    ) -> None:
        if channel_count < 1:
            raise ValueError("channel_count must be at least 1")
        self._channel_count = channel_count
        self._history = history
        self._threshold = velocity_threshold
        self._states: List[ChannelState] = [ChannelState(ch) for ch in range(channel_count)]
        self._open: List[Optional[NoteEvent]] = [None] * channel_count
        self._clock = float("-inf")

    @property
    def channel_count(self) -> int:
        return self._channel_count

    @property
    def history(self) -> HistoryLog:
        return self._history

    @property
    def velocity_threshold(self) -> float:
        return self._threshold

    @property
    def clock(self) -> float:
        """Time of the latest observation, -inf before the first one."""
        return self._clock

    def observe(self, channel: int, observation: Observation, now: float) -> List[NoteTransition]:
        """Apply one tick's observation to a channel.

        Args:
            channel: Channel index
            observation: Classifier output for this tick
            now: Transport time in seconds, never earlier than the previous tick

        Returns:
            The note-off and/or note-on transitions this tick caused
        """
        if now < self._clock:
            raise TrackerInvariantError(
                f"Time moved backwards ({now:.4f}s < {self._clock:.4f}s); reset the tracker first"
            )
        self._clock = now

        state = self._states[channel]
        note = observation.note
        velocity = min(1.0, max(0.0, float(observation.velocity)))
        sounding = note is not None and velocity > self._threshold

        transitions: List[NoteTransition] = []
        current = self._open[channel]
        if current is not None and (not sounding or note != current.note):
            transitions.append(self._close(channel, now))
        if sounding and self._open[channel] is None:
            transitions.append(self._start(channel, note, velocity, now))

        state.note = note if sounding else None
        state.velocity = velocity
        state.active = sounding
        return transitions

    def decay(self, channel: int, factor: float, now: float) -> List[NoteTransition]:
        """Scale a channel's velocity by ``factor`` as if it were observed again.

        Approximates an envelope release for channels that get no data of
        their own; a note falling below the threshold closes normally.
        """
        state = self._states[channel]
        return self.observe(channel, Observation(state.note, state.velocity * factor), now)

    def close_all(self, now: float) -> List[NoteTransition]:
        """Close every open event, e.g. at the end of a track."""
        transitions = []
        for channel in range(self._channel_count):
            if self._open[channel] is not None:
                transitions.append(self._close(channel, max(now, self._clock)))
                state = self._states[channel]
                state.note = None
                state.active = False
        return transitions

    def reset(self) -> None:
        """Forget all channel state and clear the history."""
        self._states = [ChannelState(ch) for ch in range(self._channel_count)]
        self._open = [None] * self._channel_count
        self._clock = float("-inf")
        self._history.clear()

    def states(self) -> Tuple[ChannelState, ...]:
        """Copies of the current per-channel states."""
        return tuple(dataclasses.replace(state) for state in self._states)

    def open_event(self, channel: int) -> Optional[NoteEvent]:
        return self._open[channel]

    def _start(self, channel: int, note: int, velocity: float, now: float) -> NoteTransition:
        if self._open[channel] is not None:
            raise TrackerInvariantError(f"Channel {channel} already has an open note")
        event = NoteEvent(channel=channel, note=note, velocity=velocity, start_time=now)
        self._open[channel] = event
        self._history.append(event)
        logger.debug(f"[{now:.3f}s] ch{channel} note on {note} vel {velocity:.2f}")
        return NoteTransition(NoteTransitionType.NOTE_ON, dataclasses.replace(event))

    def _close(self, channel: int, now: float) -> NoteTransition:
        event = self._open[channel]
        if event is None or not event.active:
            raise TrackerInvariantError(f"Channel {channel} has no open note to close")
        event.duration = max(0.0, now - event.start_time)
        event.active = False
        self._open[channel] = None
        logger.debug(f"[{now:.3f}s] ch{channel} note off {event.note} after {event.duration:.3f}s")
        return NoteTransition(NoteTransitionType.NOTE_OFF, dataclasses.replace(event))
