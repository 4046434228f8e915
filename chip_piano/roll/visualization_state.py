"""State shared between the audio thread (producer) and the UI (consumer)."""

from __future__ import annotations
import dataclasses
import math
import threading
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..logger import get_logger
from ..note_types import ChannelState, Observation, RegisterTick, RollSnapshot, SILENT
from ..note_utils import frequency_to_note
from ..core.events import RollEvents
from ..detection.classifiers import ChipLayout, RawPcmClassifier, VELOCITY_THRESHOLD
from .history import HistoryLog
from .note_tracker import NoteTracker, NoteTransition

logger = get_logger(__name__)

OCTAVE_MIN = -1
OCTAVE_MAX = 9


class ProgressCounter:
    """Advisory 0-1 progress value written and read without any lock.

    Writers replace one float attribute; readers may see a slightly stale
    value, which is fine for a progress bar.
    """

    def __init__(self) -> None:
        self._value = 0.0

    @property
    def value(self) -> float:
        return self._value

    def set(self, value: float) -> None:
        self._value = min(1.0, max(0.0, float(value)))

    def reset(self) -> None:
        self._value = 0.0


class VisualizationState:
    """Channel states and note history behind one exclusive lock.

    The producer calls :meth:`apply_tick` (chip registers),
    :meth:`apply_audio` (raw PCM fallback) or :meth:`apply_frequencies` once
    per audio block. The consumer calls :meth:`read_snapshot` once per
    redraw and gets an immutable copy it can iterate without the lock.

    Locking contract:
        * every read or write of channel state or history happens inside
          ``self._lock``;
        * classification, including pitch detection, runs before the lock is
          taken, so the work under the lock is a bounded per-channel update;
        * listeners registered on :attr:`events` run after the lock is
          released, on the producer's thread.
    """

    def __init__(
        self,
        layout: ChipLayout,
        expansion: Optional[ChipLayout] = None,
        history_capacity: Optional[int] = HistoryLog.DEFAULT_CAPACITY,
        velocity_threshold: float = VELOCITY_THRESHOLD,
        pcm_classifier: Optional[RawPcmClassifier] = None,
        primary_channel: int = 2,
        decay: float = 0.9,
        seconds_visible: float = 4.0,
        octave_low: int = 2,
        octave_high: int = 7,
    ) -> None:
        """Initialize the shared state.

        Args:
            layout: Channel layout of the primary sound chip
            expansion: Optional expansion chip layout, appended after the primary channels
            history_capacity: Maximum number of piano-roll events
            velocity_threshold: Velocity a note must exceed to sound
            pcm_classifier: Classifier used by apply_audio()
            primary_channel: Channel that receives the pitch found in raw PCM
            decay: Per-block velocity factor for the other channels in PCM mode
            seconds_visible: Width of the piano-roll time window
            octave_low: Lowest visible octave
            octave_high: Highest visible octave
        """
        self._layout = layout
        self._expansion = expansion
        channel_count = len(layout) + (len(expansion) if expansion is not None else 0)
        if history_capacity is not None and history_capacity <= channel_count:
            raise ValueError(
                f"history_capacity must exceed the channel count ({channel_count})"
            )
        if not 0 <= primary_channel < channel_count:
            raise ValueError(f"primary_channel must be in [0, {channel_count})")
        if not 0.0 <= decay < 1.0:
            raise ValueError("decay must be in [0.0, 1.0)")
        self._validate_time_window(seconds_visible)
        self._validate_octave_range(octave_low, octave_high)

        self._lock = threading.Lock()
        self._history = HistoryLog(history_capacity)
        self._tracker = NoteTracker(channel_count, self._history, velocity_threshold)
        self._pcm = pcm_classifier
        self._primary_channel = primary_channel
        self._decay = decay
        self._seconds_visible = float(seconds_visible)
        self._octave_low = int(octave_low)
        self._octave_high = int(octave_high)
        self._expansion_enabled = False
        self._time = 0.0

        self.events = RollEvents()
        self.progress = ProgressCounter()

        logger.info(
            f"Visualization state ready: {channel_count} channels "
            f"({layout.name}{' + ' + expansion.name if expansion else ''}), "
            f"history capacity {history_capacity}"
        )

    @property
    def channel_count(self) -> int:
        return self._tracker.channel_count

    @property
    def channel_names(self) -> Tuple[str, ...]:
        names = self._layout.names
        if self._expansion is not None:
            names += self._expansion.names
        return names

    @property
    def layout(self) -> ChipLayout:
        return self._layout

    @property
    def expansion(self) -> Optional[ChipLayout]:
        return self._expansion

    # Producer side

    def apply_tick(self, tick: RegisterTick) -> Tuple[ChannelState, ...]:
        """Classify one tick of chip registers and update every channel.

        Expansion channels are fed silence while the tick carries no
        expansion registers, which closes any note they were holding.

        Returns:
            Copies of the channel states after the update
        """
        observations = self._layout.classify(tick.primary, tick.clock_rate)
        expansion_enabled = False
        if self._expansion is not None:
            if tick.expansion is not None:
                observations += self._expansion.classify(tick.expansion, tick.clock_rate)
                expansion_enabled = True
            else:
                observations += [SILENT] * len(self._expansion)
        elif tick.expansion is not None:
            logger.debug("Ignoring expansion registers: no expansion layout configured")

        with self._lock:
            self._expansion_enabled = expansion_enabled
            transitions = self._apply_locked(observations, tick.time)
            states = self._tracker.states()
        self._dispatch(transitions)
        return states

    def apply_audio(
        self, samples: np.ndarray, sample_rate: int, now: float
    ) -> Optional[Tuple[ChannelState, ...]]:
        """Update from a block of interleaved 16-bit stereo audio.

        The detected pitch goes to the primary channel. Every other channel
        has no data of its own and just decays; that activity is a heuristic,
        not a measurement.

        Returns:
            Copies of the channel states, or None if the block was too short
        """
        if self._pcm is None:
            raise RuntimeError("No raw-PCM classifier configured")

        # Pitch detection is the expensive part, keep it outside the lock
        observation = self._pcm.classify(samples, sample_rate)
        if observation is None:
            logger.debug(f"Skipping short audio block ({len(samples)} samples)")
            return None

        with self._lock:
            transitions = self._check_clock(now)
            transitions += self._tracker.observe(self._primary_channel, observation, now)
            for channel in range(self._tracker.channel_count):
                if channel != self._primary_channel:
                    transitions += self._tracker.decay(channel, self._decay, now)
            self._time = now
            states = self._tracker.states()
        self._dispatch(transitions)
        return states

    def apply_frequencies(
        self, frequencies: Sequence[float], amplitudes: Sequence[float], now: float
    ) -> Tuple[ChannelState, ...]:
        """Update from per-channel frequencies (Hz, 0 if silent) and amplitudes (0-1)."""
        if len(frequencies) != self.channel_count or len(amplitudes) != self.channel_count:
            raise ValueError(f"Expected {self.channel_count} frequencies and amplitudes")
        observations = [
            Observation(frequency_to_note(freq), amp)
            for freq, amp in zip(frequencies, amplitudes)
        ]
        with self._lock:
            transitions = self._apply_locked(observations, now)
            states = self._tracker.states()
        self._dispatch(transitions)
        return states

    def finish(self, now: Optional[float] = None) -> None:
        """Close every sounding note, e.g. when playback stops."""
        with self._lock:
            end = self._time if now is None else now
            transitions = self._check_clock(end)
            transitions += self._tracker.close_all(end)
            self._time = end
        self._dispatch(transitions)

    def reset(self) -> None:
        """Clear all channel state and history in one atomic step."""
        with self._lock:
            self._tracker.reset()
            self._expansion_enabled = False
            self._time = 0.0
        self.progress.reset()
        logger.info("Visualization state reset")

    # Consumer side

    def read_snapshot(self, now: Optional[float] = None) -> RollSnapshot:
        """Copy the current state for rendering.

        Args:
            now: Right edge of the roll window; defaults to the latest tick time

        Returns:
            Channel states plus the events overlapping [now - seconds_visible, now]
        """
        with self._lock:
            end = self._time if now is None else now
            visible = self._history.visible(end - self._seconds_visible, end)
            return RollSnapshot(
                time=end,
                channels=self._tracker.states(),
                events=tuple(dataclasses.replace(event) for event in visible),
                seconds_visible=self._seconds_visible,
                octave_low=self._octave_low,
                octave_high=self._octave_high,
                expansion_enabled=self._expansion_enabled,
                channel_names=self.channel_names,
            )

    def history_size(self) -> int:
        with self._lock:
            return len(self._history)

    # Settings

    def set_time_window(self, seconds: float) -> None:
        """Set how many seconds of history the roll shows."""
        self._validate_time_window(seconds)
        with self._lock:
            self._seconds_visible = float(seconds)

    def set_octave_range(self, low: int, high: int) -> None:
        """Set the visible octaves; requires low < high."""
        self._validate_octave_range(low, high)
        with self._lock:
            self._octave_low = int(low)
            self._octave_high = int(high)

    @staticmethod
    def _validate_time_window(seconds: float) -> None:
        if not math.isfinite(seconds) or seconds <= 0:
            raise ValueError("seconds_visible must be a positive number")

    @staticmethod
    def _validate_octave_range(low: int, high: int) -> None:
        if not OCTAVE_MIN <= low < high <= OCTAVE_MAX:
            raise ValueError(
                f"Octave range must satisfy {OCTAVE_MIN} <= low < high <= {OCTAVE_MAX}, "
                f"got {low}..{high}"
            )

    # Internals, call with the lock held

    def _check_clock(self, now: float) -> List[NoteTransition]:
        """Reset on a backwards seek, closing sounding notes at the old time first."""
        if now >= self._tracker.clock:
            return []
        logger.info(
            f"Transport moved back to {now:.3f}s from {self._tracker.clock:.3f}s, clearing history"
        )
        closed = self._tracker.close_all(self._tracker.clock)
        self._tracker.reset()
        return closed

    def _apply_locked(self, observations: List[Observation], now: float) -> List[NoteTransition]:
        if len(observations) != self._tracker.channel_count:
            raise ValueError(
                f"Expected {self._tracker.channel_count} observations, got {len(observations)}"
            )
        transitions = self._check_clock(now)
        for channel, observation in enumerate(observations):
            transitions += self._tracker.observe(channel, observation, now)
        self._time = now
        return transitions

    def _dispatch(self, transitions: List[NoteTransition]) -> None:
        for transition in transitions:
            self.events.emit(transition.kind, transition.event)
