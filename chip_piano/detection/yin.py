"""aubio YIN pitch detection, an alternative backend for the raw-PCM fallback."""

from __future__ import annotations
from typing import Dict, Tuple

import aubio
import numpy as np

from ..logger import get_logger
from ..core.interfaces import IPitchDetector, PitchEstimate, NO_PITCH

logger = get_logger(__name__)


class YinPitchDetector(IPitchDetector):
    """Single-pitch detection backed by ``aubio.pitch("yin")``.

    aubio needs a fixed buffer size, so one pitch object is kept per
    (window length, sample rate) pair.
    """

    MIN_SAMPLES = 64
    MIN_FREQUENCY = 50.0
    MAX_FREQUENCY = 2000.0

    def __init__(
        self,
        tolerance: float = 0.8,
        min_confidence: float = 0.5,
        max_window: int = 4096,
    ) -> None:
        """Initialize the detector.

        Args:
            tolerance: aubio YIN tolerance (0.0 to 1.0)
            min_confidence: Minimum aubio confidence to report a pitch
            max_window: Number of most recent samples analysed per call
        """
        if not 0.0 <= tolerance <= 1.0:
            raise ValueError("Tolerance must be between 0.0 and 1.0")
        self._tolerance = tolerance
        self._min_confidence = min_confidence
        self._max_window = max_window
        self._detectors: Dict[Tuple[int, int], aubio.pitch] = {}

    def _detector_for(self, size: int, sample_rate: int) -> aubio.pitch:
        key = (size, sample_rate)
        detector = self._detectors.get(key)
        if detector is None:
            detector = aubio.pitch("yin", size, size, sample_rate)
            detector.set_unit("Hz")
            detector.set_tolerance(self._tolerance)
            self._detectors[key] = detector
            logger.info(f"Created aubio yin detector: buf_size={size}, sample_rate={sample_rate}")
        return detector

    def detect(self, samples: np.ndarray, sample_rate: int) -> PitchEstimate:
        x = np.asarray(samples, dtype=np.float32).ravel()
        if len(x) < self.MIN_SAMPLES or sample_rate <= 0:
            return NO_PITCH
        if len(x) > self._max_window:
            x = x[-self._max_window:]

        detector = self._detector_for(len(x), int(sample_rate))
        pitch = float(detector(np.ascontiguousarray(x))[0])
        confidence = float(detector.get_confidence())
        logger.debug(f"Pitch: {pitch:.2f} Hz, Confidence: {confidence:.4f}")

        if (
            confidence < self._min_confidence
            or pitch < self.MIN_FREQUENCY
            or pitch > self.MAX_FREQUENCY
        ):
            return NO_PITCH
        return PitchEstimate(pitch, confidence)
