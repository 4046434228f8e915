"""Audio files as a source of interleaved stereo blocks."""

from __future__ import annotations
import threading
import time
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

import numpy as np
import soundfile as sf

from ..logger import get_logger
from ..core.interfaces import IAudioSource

logger = get_logger(__name__)


def _to_interleaved_stereo(data: np.ndarray) -> np.ndarray:
    """Turn a (frames, channels) int16 block into interleaved stereo."""
    if data.shape[1] == 1:
        data = np.repeat(data, 2, axis=1)
    elif data.shape[1] > 2:
        data = data[:, :2]
    return np.ascontiguousarray(data).reshape(-1)


class WavFileSource(IAudioSource):
    """Reads an audio file with soundfile and delivers it block by block.

    Mono files are duplicated to both channels and anything wider than
    stereo keeps its first two channels, so consumers always see interleaved
    16-bit stereo. :meth:`start` streams on a background thread at playback
    speed (or as fast as possible with ``realtime=False``); :meth:`iter_blocks`
    reads synchronously for offline analysis.
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        frames_per_buffer: int = 1024,
        loop: bool = False,
        realtime: bool = True,
    ) -> None:
        if frames_per_buffer <= 0:
            raise ValueError("frames_per_buffer must be positive")
        self._file_path = str(file_path)
        self._frames_per_buffer = frames_per_buffer
        self._loop = loop
        self._realtime = realtime
        self._callback: Optional[Callable[[np.ndarray, float], None]] = None
        self._is_running = False
        self._thread: Optional[threading.Thread] = None

        info = sf.info(self._file_path)
        self._sample_rate = int(info.samplerate)
        self._channels = int(info.channels)
        self._frames = int(info.frames)
        logger.info(
            f"Opened {self._file_path}: {self._sample_rate}Hz, "
            f"{self._channels} channel(s), {self.duration:.1f}s"
        )

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def channels(self) -> int:
        return self._channels

    @property
    def frames(self) -> int:
        return self._frames

    @property
    def duration(self) -> float:
        return self._frames / self._sample_rate if self._sample_rate else 0.0

    def iter_blocks(self) -> Iterator[np.ndarray]:
        """Yield interleaved int16 stereo blocks from the start of the file."""
        with sf.SoundFile(self._file_path) as f:
            while True:
                data = f.read(self._frames_per_buffer, dtype="int16", always_2d=True)
                if len(data) == 0:
                    break
                yield _to_interleaved_stereo(data)

    def start(self, callback: Callable[[np.ndarray, float], None]) -> bool:
        if self._is_running:
            logger.warning("WAV source already running")
            return True

        self._callback = callback
        self._is_running = True
        self._thread = threading.Thread(target=self._stream_data, daemon=True)
        self._thread.start()
        logger.info(f"Streaming {self._file_path}")
        return True

    def stop(self) -> None:
        self._is_running = False
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None

    def is_running(self) -> bool:
        """Returns True while the file is being streamed."""
        return self._is_running

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until streaming finishes."""
        if self._thread:
            self._thread.join(timeout)

    def _stream_data(self) -> None:
        block_seconds = self._frames_per_buffer / self._sample_rate
        try:
            while self._is_running:
                # Stream time restarts with every pass over the file
                frames_done = 0
                for block in self.iter_blocks():
                    if not self._is_running:
                        break
                    if self._callback:
                        self._callback(block, frames_done / self._sample_rate)
                    frames_done += len(block) // 2
                    if self._realtime:
                        time.sleep(block_seconds)
                if not self._loop:
                    break
        except Exception as e:
            logger.error(f"Error streaming {self._file_path}: {e}", exc_info=True)
        finally:
            self._is_running = False
            logger.info(f"Finished streaming {self._file_path}")
