"""Service that feeds an audio source into the piano-roll state."""

from __future__ import annotations
from typing import Callable, Optional, Tuple

import numpy as np

from ..logger import get_logger
from ..note_types import ChannelState
from ..core.interfaces import IAudioSource
from ..roll.visualization_state import VisualizationState

logger = get_logger(__name__)

StatesCallback = Callable[[Tuple[ChannelState, ...], float], None]


class PcmRollService:
    """Connects an :class:`IAudioSource` to :meth:`VisualizationState.apply_audio`.

    Transport time is the number of frames consumed so far divided by the
    source's sample rate, so it never depends on wall-clock jitter.
    """

    def __init__(self, audio_source: IAudioSource, state: VisualizationState) -> None:
        """Initialize the service.

        Args:
            audio_source: Producer of interleaved 16-bit stereo blocks
            state: Shared state updated once per block
        """
        self._audio_source = audio_source
        self._state = state
        self._callback: Optional[StatesCallback] = None
        self._frames = 0
        self._running = False

    @property
    def state(self) -> VisualizationState:
        return self._state

    @property
    def transport_time(self) -> float:
        return self._frames / self._audio_source.sample_rate

    def start(self, callback: Optional[StatesCallback] = None) -> bool:
        """Start streaming audio into the state.

        Args:
            callback: Optional function called with the channel states and
                transport time after each analysed block

        Returns:
            True if the audio source started
        """
        if self._running:
            logger.warning("PCM roll service already running")
            return True

        self._callback = callback
        self._frames = 0
        self._state.reset()
        if not self._audio_source.start(self.process_block):
            logger.error("Audio source failed to start")
            return False

        self._running = True
        logger.info(f"PCM roll service started at {self._audio_source.sample_rate}Hz")
        return True

    def stop(self) -> None:
        if not self._running:
            return
        self._audio_source.stop()
        self._state.finish(self.transport_time)
        self._running = False
        logger.info(f"PCM roll service stopped at {self.transport_time:.2f}s")

    def is_running(self) -> bool:
        return self._running and self._audio_source.is_running()

    def process_block(self, samples: np.ndarray, _stream_time: float = 0.0) -> None:
        """Analyse one block of interleaved stereo samples.

        Runs on the audio source's thread.
        """
        now = self.transport_time
        self._frames += len(samples) // 2
        states = self._state.apply_audio(samples, self._audio_source.sample_rate, now)
        if states is not None and self._callback:
            self._callback(states, now)
