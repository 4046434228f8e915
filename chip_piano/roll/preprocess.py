"""Offline pre-analysis of a whole track into a complete piano roll."""

from __future__ import annotations
import math
from typing import Iterable, List, Optional, Tuple

import numpy as np

from ..logger import get_logger
from ..note_types import NoteEvent, RegisterTick, SILENT
from ..detection.classifiers import ChipLayout, RawPcmClassifier, VELOCITY_THRESHOLD
from .history import HistoryLog
from .note_tracker import NoteTracker
from .visualization_state import ProgressCounter

logger = get_logger(__name__)


class TrackPreanalyzer:
    """Runs a private tracker over a full recording, ahead of playback.

    Nothing here touches a live :class:`VisualizationState`; the only shared
    value is the advisory :class:`ProgressCounter`, written without a lock.
    """

    def __init__(
        self,
        layout: ChipLayout,
        expansion: Optional[ChipLayout] = None,
        velocity_threshold: float = VELOCITY_THRESHOLD,
        progress: Optional[ProgressCounter] = None,
    ) -> None:
        self._layout = layout
        self._expansion = expansion
        self._threshold = velocity_threshold
        self.progress = progress or ProgressCounter()

    @property
    def channel_count(self) -> int:
        return len(self._layout) + (len(self._expansion) if self._expansion else 0)

    @property
    def channel_names(self) -> Tuple[str, ...]:
        names = self._layout.names
        if self._expansion is not None:
            names += self._expansion.names
        return names

    def _new_tracker(self) -> NoteTracker:
        return NoteTracker(self.channel_count, HistoryLog(capacity=None), self._threshold)

    def _report(self, done: int, total: Optional[int]) -> None:
        if total:
            self.progress.set(done / total)

    def analyze_trace(self, ticks: Iterable[RegisterTick], total: Optional[int] = None) -> List[NoteEvent]:
        """Build the note list for a register trace.

        Args:
            ticks: Register ticks in playback order
            total: Number of ticks, for progress reporting; taken from
                ``len(ticks)`` when available

        Returns:
            Every note event of the track, closed, in onset order
        """
        if total is None and hasattr(ticks, "__len__"):
            total = len(ticks)
        self.progress.reset()
        tracker = self._new_tracker()

        done = 0
        for tick in ticks:
            observations = self._layout.classify(tick.primary, tick.clock_rate)
            if self._expansion is not None:
                if tick.expansion is not None:
                    observations += self._expansion.classify(tick.expansion, tick.clock_rate)
                else:
                    observations += [SILENT] * len(self._expansion)
            if tick.time < tracker.clock:
                raise ValueError(f"Trace time goes backwards at tick {done} ({tick.time}s)")
            for channel, observation in enumerate(observations):
                tracker.observe(channel, observation, tick.time)
            done += 1
            self._report(done, total)

        return self._finish(tracker, done)

    def analyze_pcm(
        self,
        blocks: Iterable[np.ndarray],
        sample_rate: int,
        classifier: RawPcmClassifier,
        primary_channel: int = 2,
        total_frames: Optional[int] = None,
    ) -> List[NoteEvent]:
        """Build the note list for interleaved stereo audio blocks.

        Transport time is derived from the frames consumed, so the result
        lines up with playback of the same file.
        """
        self.progress.reset()
        tracker = self._new_tracker()

        frames = 0
        blocks_seen = 0
        for block in blocks:
            now = frames / sample_rate
            observation = classifier.classify(block, sample_rate)
            if observation is not None:
                tracker.observe(primary_channel, observation, now)
            frames += len(block) // 2
            blocks_seen += 1
            self._report(frames, total_frames)

        events = self._finish(tracker, blocks_seen, end=frames / sample_rate)
        return events

    def _finish(self, tracker: NoteTracker, ticks: int, end: Optional[float] = None) -> List[NoteEvent]:
        end_time = tracker.clock if end is None else max(end, tracker.clock)
        if math.isfinite(end_time):
            tracker.close_all(end_time)
        self.progress.set(1.0)
        events = list(tracker.history)
        logger.info(f"Pre-analysis done: {ticks} ticks, {len(events)} notes")
        return events
