"""Live audio capture feeding the raw-PCM fallback."""

from __future__ import annotations
from typing import Any, Callable, ClassVar, Dict, List, Optional

import numpy as np
import sounddevice as sd

from ..logger import get_logger
from ..core.interfaces import IAudioSource

logger = get_logger(__name__)


def list_input_devices() -> List[Dict[str, Any]]:
    """Return the input-capable devices known to PortAudio."""
    devices = []
    for device_id, device in enumerate(sd.query_devices()):
        if device["max_input_channels"] > 0:
            devices.append({"id": device_id, **dict(device)})
    return devices


class SoundDeviceInput(IAudioSource):
    """Captures interleaved 16-bit stereo blocks with sounddevice.

    The callback runs on PortAudio's thread with
    ``(samples, stream_time)``, where ``samples`` is a 1D int16 array of
    interleaved left/right frames and ``stream_time`` counts seconds of audio
    captured since start().
    """

    SAMPLE_RATE: ClassVar[int] = 44100  # Hz
    FRAMES_PER_BUFFER: ClassVar[int] = 1024
    CHANNELS: ClassVar[int] = 2

    def __init__(
        self,
        device_id: Optional[int] = None,
        sample_rate: Optional[int] = None,
        frames_per_buffer: Optional[int] = None,
        channels: Optional[int] = None,
    ) -> None:
        """Initialize the audio input handler.

        Args:
            device_id: Audio input device ID, or None for the default device
            sample_rate: Sample rate in Hz, or None for default (44100)
            frames_per_buffer: Buffer size in frames, or None for default (1024)
            channels: 1 or 2 capture channels; mono is duplicated to stereo
        """
        self._device_id = device_id
        self._sample_rate = sample_rate or self.SAMPLE_RATE
        self._frames_per_buffer = frames_per_buffer or self.FRAMES_PER_BUFFER
        self._channels = channels or self.CHANNELS
        if self._channels not in (1, 2):
            raise ValueError("channels must be 1 or 2")

        self._stream: Optional[sd.InputStream] = None
        self._callback: Optional[Callable[[np.ndarray, float], None]] = None
        self._running = False
        self._frames_captured = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    def is_running(self) -> bool:
        return self._running

    def _audio_callback(
        self,
        indata: np.ndarray,
        frames: int,
        _time_info: Any,
        status: sd.CallbackFlags,
    ) -> None:
        """Forward one captured block.

        Note:
            This is called from the PortAudio thread, so it should be fast
            and avoid any blocking operations to prevent audio glitches.
        """
        if status:
            logger.warning(f"Audio callback status: {status}")

        if indata.shape[1] == 1:
            indata = np.repeat(indata, 2, axis=1)
        stream_time = self._frames_captured / self._sample_rate
        self._frames_captured += frames

        if self._callback:
            self._callback(indata.reshape(-1).copy(), stream_time)

    def start(self, callback: Callable[[np.ndarray, float], None]) -> bool:
        """Start capturing audio and pass it to the callback.

        Returns:
            True if started successfully, False otherwise
        """
        if self._running:
            logger.warning("Audio input already running")
            return True

        self._callback = callback
        self._frames_captured = 0
        try:
            logger.info(
                f"Starting audio input: device={self._device_id}, "
                f"rate={self._sample_rate}Hz, block={self._frames_per_buffer}"
            )
            self._stream = sd.InputStream(
                device=self._device_id,
                samplerate=self._sample_rate,
                blocksize=self._frames_per_buffer,
                channels=self._channels,
                dtype="int16",
                callback=self._audio_callback,
            )
            self._stream.start()
        except Exception as e:
            logger.error(f"Failed to start audio input: {e}")
            if self._stream is not None:
                self._stream.close()
                self._stream = None
            return False

        self._running = True
        logger.info("Audio input started")
        return True

    def stop(self) -> None:
        """Stop capturing audio."""
        if not self._running:
            return

        try:
            if self._stream:
                self._stream.stop()
                self._stream.close()
        except Exception as e:
            logger.error(f"Error stopping audio input: {e}")
        finally:
            self._stream = None
            self._running = False
            logger.info("Audio input stopped")
