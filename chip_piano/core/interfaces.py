"""Defines the core interfaces for the chip_piano application."""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Callable, NamedTuple

import numpy as np


class PitchEstimate(NamedTuple):
    """Dominant pitch of a sample window."""

    frequency: float  # Hz, 0.0 when no pitch was found
    confidence: float  # Detector-specific score, 0-1


NO_PITCH = PitchEstimate(0.0, 0.0)


class IPitchDetector(ABC):
    """Interface for single-pitch detectors used by the raw-PCM fallback."""

    @abstractmethod
    def detect(self, samples: np.ndarray, sample_rate: int) -> PitchEstimate:
        """Estimate the dominant frequency of a mono float sample window."""
        pass


class IAudioSource(ABC):
    """Interface for producers of interleaved 16-bit stereo audio blocks."""

    @abstractmethod
    def start(self, callback: Callable[[np.ndarray, float], None]) -> bool:
        """Start delivering (samples, stream_time) blocks to the callback."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop delivering audio."""
        pass

    @abstractmethod
    def is_running(self) -> bool:
        """Check if audio is running."""
        pass

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """The sample rate of the audio stream."""
        pass
