"""Autocorrelation pitch detection for the raw-PCM fallback path."""

from __future__ import annotations
from typing import ClassVar

import numpy as np

from ..logger import get_logger
from ..core.interfaces import IPitchDetector, PitchEstimate, NO_PITCH

logger = get_logger(__name__)


class AutocorrelationPitchDetector(IPitchDetector):
    """Estimate a single dominant frequency by normalized autocorrelation.

    For every lag in ``[sample_rate / MAX_FREQUENCY, min(n / 2, sample_rate / MIN_FREQUENCY))``
    the correlation ``sum(x[i] * x[i + lag])`` over the overlapping region is
    divided by ``sqrt(sum(x[i]^2) * sum(x[i + lag]^2))`` over the same region.
    Lags spanning several periods can land nearer a whole sample than the
    one-period lag and score a hair higher, so the shortest local peak within
    ``PEAK_TOLERANCE`` of the best score wins. It must exceed
    ``min_correlation``.

    Cost is O(window * lags), so the window is capped to the most recent
    ``max_window`` samples. Callers on the audio thread must run this before
    taking any lock shared with the UI.
    """

    MIN_SAMPLES: ClassVar[int] = 64
    MIN_FREQUENCY: ClassVar[float] = 50.0  # Hz, sets the longest lag
    MAX_FREQUENCY: ClassVar[float] = 2000.0  # Hz, sets the shortest lag
    PEAK_TOLERANCE: ClassVar[float] = 0.01

    def __init__(self, min_correlation: float = 0.5, max_window: int = 4096) -> None:
        if not 0.0 <= min_correlation < 1.0:
            raise ValueError("min_correlation must be in [0.0, 1.0)")
        if max_window < self.MIN_SAMPLES:
            raise ValueError(f"max_window must be at least {self.MIN_SAMPLES}")
        self._min_correlation = float(min_correlation)
        self._max_window = int(max_window)

    @property
    def min_correlation(self) -> float:
        return self._min_correlation

    @property
    def max_window(self) -> int:
        return self._max_window

    def detect(self, samples: np.ndarray, sample_rate: int) -> PitchEstimate:
        """Detect the dominant frequency of a mono sample window.

        Args:
            samples: 1D array of mono samples, nominally in [-1, 1]
            sample_rate: Sample rate in Hz

        Returns:
            PitchEstimate with the frequency in Hz and its normalized
            correlation, or NO_PITCH for short or aperiodic input
        """
        x = np.asarray(samples, dtype=np.float64).ravel()
        if len(x) < self.MIN_SAMPLES or sample_rate <= 0:
            return NO_PITCH
        if len(x) > self._max_window:
            x = x[-self._max_window:]

        n = len(x)
        min_lag = max(1, int(sample_rate / self.MAX_FREQUENCY))
        max_lag = min(n // 2, int(sample_rate / self.MIN_FREQUENCY))
        if max_lag <= min_lag:
            return NO_PITCH

        lags = np.arange(min_lag, max_lag)

        # r[lag] = sum_{i < n - lag} x[i] * x[i + lag]
        r = np.correlate(x, x, mode="full")[n - 1:]
        # Energies of the two overlapping regions from one running sum
        csum = np.concatenate(([0.0], np.cumsum(x * x)))
        head_energy = csum[n - lags]
        tail_energy = csum[n] - csum[lags]

        denom = head_energy * tail_energy
        valid = (head_energy > 0) & (tail_energy > 0)
        if not np.any(valid):
            return NO_PITCH

        scores = np.full(len(lags), -np.inf)
        scores[valid] = r[lags[valid]] / np.sqrt(denom[valid])

        best = self._fundamental_index(scores)
        best_score = float(scores[best])
        best_lag = int(lags[best])
        logger.debug(f"Autocorrelation best lag {best_lag} score {best_score:.4f}")

        if best_score > self._min_correlation:
            return PitchEstimate(sample_rate / best_lag, best_score)
        return NO_PITCH

    @classmethod
    def _fundamental_index(cls, scores: np.ndarray) -> int:
        """Index of the shortest local peak scoring close to the maximum."""
        floor = float(np.max(scores)) - cls.PEAK_TOLERANCE
        inner = scores[1:-1]
        peaks = np.flatnonzero((inner >= scores[:-2]) & (inner >= scores[2:]) & (inner >= floor)) + 1
        if len(peaks):
            return int(peaks[0])
        return int(np.argmax(scores))
