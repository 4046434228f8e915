"""Type definitions for the chip_piano project."""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple


@dataclass(frozen=True)
class ChannelRegisters:
    """Raw oscillator registers for one sound-chip channel."""

    period: int  # Timer period register
    length: int  # Length counter (0 = silenced), or 1/0 for an enable flag
    amplitude: int  # Current output amplitude or volume register


@dataclass(frozen=True)
class Observation:
    """One classifier result for one channel on one update tick."""

    note: Optional[int]  # MIDI note 0-127, None when nothing is sounding
    velocity: float  # Normalized loudness (0-1)


SILENT = Observation(None, 0.0)


@dataclass(frozen=True)
class RegisterTick:
    """Register state of every chip channel at one transport time."""

    time: float  # Monotonic transport time in seconds
    primary: Sequence[ChannelRegisters]
    expansion: Optional[Sequence[ChannelRegisters]] = None  # None when disabled
    clock_rate: Optional[float] = None  # Overrides the layout's clock if set


@dataclass
class ChannelState:
    """Current note state of one logical audio channel."""

    channel: int  # Stable channel index
    note: Optional[int] = None
    velocity: float = 0.0
    active: bool = False


@dataclass
class NoteEvent:
    """Represents one piano-roll entry."""

    channel: int
    note: int
    velocity: float  # Velocity at onset, never rewritten
    start_time: float  # In seconds
    duration: float = 0.0  # In seconds, 0 while still sounding
    active: bool = True

    def end_time(self, now: float) -> float:
        """Return the time the note stopped, or ``now`` if it is still sounding."""
        if self.active:
            return max(self.start_time, now)
        return self.start_time + self.duration


@dataclass(frozen=True)
class RollSnapshot:
    """Read-only copy of the visualization state handed to a renderer."""

    time: float
    channels: Tuple[ChannelState, ...]
    events: Tuple[NoteEvent, ...]
    seconds_visible: float
    octave_low: int
    octave_high: int
    expansion_enabled: bool = False
    channel_names: Tuple[str, ...] = field(default_factory=tuple)
