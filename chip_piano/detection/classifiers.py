"""Per-channel classifiers turning chip registers or raw audio into notes.

Every classifier answers one question per update tick: which note is this
channel sounding, and how loud. Classifiers are chosen per channel by the
chip layout, never by inspecting the data.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import ClassVar, List, Optional, Sequence, Tuple

import numpy as np

from ..logger import get_logger
from ..note_types import ChannelRegisters, Observation, SILENT
from ..note_utils import frequency_to_note
from ..core.interfaces import IPitchDetector

logger = get_logger(__name__)

NTSC_CPU_CLOCK = 1789773.0  # Hz
PAL_CPU_CLOCK = 1662607.0  # Hz

# Velocity a channel must exceed to count as sounding
VELOCITY_THRESHOLD = 0.05


class ChannelKind(Enum):
    """The kinds of audio source a channel can be."""

    MELODIC = auto()
    NOISE = auto()
    SAMPLE_PLAYBACK = auto()
    RAW_PCM = auto()


def _normalize(amplitude: int, max_amplitude: float) -> float:
    return min(1.0, abs(amplitude) / max_amplitude)


class ChannelClassifier(ABC):
    """Base class for all channel classifiers."""

    kind: ClassVar[ChannelKind]

    @abstractmethod
    def classify(self, data, rate: float) -> Optional[Observation]:
        """Classify one tick of channel data.

        Args:
            data: ChannelRegisters for chip channels, a sample array for RAW_PCM
            rate: Chip clock rate in Hz, or the audio sample rate for RAW_PCM
        """
        pass


class MelodicClassifier(ChannelClassifier):
    """Tonal oscillator: period register to pitch.

    freq = clock / (divider * (period + 1)). Periods below ``min_period``
    produce ultrasonic tones and are muted outright rather than quantized.
    """

    kind = ChannelKind.MELODIC

    def __init__(self, divider: int = 16, max_amplitude: float = 15.0, min_period: int = 8) -> None:
        self.divider = divider
        self.max_amplitude = max_amplitude
        self.min_period = min_period

    def classify(self, data: ChannelRegisters, rate: float) -> Observation:
        if data.length == 0 or data.amplitude == 0 or data.period < self.min_period:
            return SILENT

        freq = rate / (self.divider * (data.period + 1))
        note = frequency_to_note(freq)
        if note is None:
            return SILENT
        return Observation(note, _normalize(data.amplitude, self.max_amplitude))

    def __repr__(self) -> str:
        return f"MelodicClassifier(divider={self.divider}, max_amplitude={self.max_amplitude})"


class NoiseClassifier(ChannelClassifier):
    """Noise channel shown as a rhythm indicator, not a real pitch.

    The 4-bit noise period index maps inversely onto C2 (36) to D#3 (51):
    a shorter period sounds brighter, so it gets a higher key.
    """

    kind = ChannelKind.NOISE

    BASE_NOTE: ClassVar[int] = 36

    def __init__(self, max_amplitude: float = 15.0) -> None:
        self.max_amplitude = max_amplitude

    def classify(self, data: ChannelRegisters, rate: float) -> Observation:
        if data.length == 0 or data.amplitude == 0:
            return SILENT
        index = data.period & 0x0F
        return Observation(self.BASE_NOTE + (15 - index), _normalize(data.amplitude, self.max_amplitude))


class SamplePlaybackClassifier(ChannelClassifier):
    """Delta-modulation sample channel: one fixed low key while a sample plays."""

    kind = ChannelKind.SAMPLE_PLAYBACK

    NOTE: ClassVar[int] = 28  # E1

    def __init__(self, max_amplitude: float = 127.0) -> None:
        self.max_amplitude = max_amplitude

    def classify(self, data: ChannelRegisters, rate: float) -> Observation:
        if data.length == 0 or data.amplitude == 0:
            return SILENT
        return Observation(self.NOTE, _normalize(data.amplitude, self.max_amplitude))


class RawPcmClassifier(ChannelClassifier):
    """Fallback for sources that only expose mixed PCM audio.

    Interleaved 16-bit stereo is averaged to mono in [-1, 1]. Velocity is the
    RMS level times an empirical ``gain``; the note comes from the pitch
    detector. Only one dominant pitch is ever reported.
    """

    kind = ChannelKind.RAW_PCM

    MIN_INTERLEAVED_SAMPLES: ClassVar[int] = 128

    def __init__(self, detector: IPitchDetector, gain: float = 3.0) -> None:
        self.detector = detector
        self.gain = gain

    @staticmethod
    def to_mono(samples: np.ndarray) -> np.ndarray:
        """Average interleaved int16 stereo to float mono in [-1, 1]."""
        pcm = np.asarray(samples).ravel()
        frames = len(pcm) // 2
        stereo = pcm[: frames * 2].astype(np.float32).reshape(frames, 2) / 32768.0
        return stereo.mean(axis=1)

    def classify(self, data: np.ndarray, rate: float) -> Optional[Observation]:
        """Classify one block of interleaved stereo samples.

        Returns:
            The observation, or None when the block is too short to analyse
        """
        if data is None or len(data) < self.MIN_INTERLEAVED_SAMPLES:
            return None

        mono = self.to_mono(data)
        rms = float(np.sqrt(np.mean(np.square(mono, dtype=np.float64))))
        velocity = min(1.0, rms * self.gain)

        estimate = self.detector.detect(mono, int(rate))
        note = frequency_to_note(estimate.frequency)
        logger.debug(
            f"PCM block: rms={rms:.4f} freq={estimate.frequency:.1f}Hz "
            f"score={estimate.confidence:.3f} note={note}"
        )
        return Observation(note, velocity)


@dataclass(frozen=True)
class ChannelSlot:
    """One channel of a chip: display name plus its classifier."""

    name: str
    classifier: ChannelClassifier

    @property
    def kind(self) -> ChannelKind:
        return self.classifier.kind


@dataclass(frozen=True)
class ChipLayout:
    """Fixed channel-index to classifier mapping of one sound chip."""

    name: str
    channels: Tuple[ChannelSlot, ...]
    clock_rate: float = NTSC_CPU_CLOCK

    def __len__(self) -> int:
        return len(self.channels)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(slot.name for slot in self.channels)

    def index_of(self, name: str) -> int:
        """Return the channel index for a display name."""
        for index, slot in enumerate(self.channels):
            if slot.name == name:
                return index
        raise KeyError(f"No channel named {name!r} in {self.name}")

    def classify(
        self, registers: Sequence[ChannelRegisters], clock_rate: Optional[float] = None
    ) -> List[Observation]:
        """Run each channel's classifier on its registers.

        Raises:
            ValueError: If the register count does not match the layout
        """
        if len(registers) != len(self.channels):
            raise ValueError(
                f"{self.name} expects {len(self.channels)} channels, got {len(registers)}"
            )
        rate = clock_rate or self.clock_rate
        return [
            slot.classifier.classify(regs, rate)
            for slot, regs in zip(self.channels, registers)
        ]


def nes_apu_layout(clock_rate: float = NTSC_CPU_CLOCK) -> ChipLayout:
    """2A03 APU: two pulses, triangle, noise and DMC."""
    return ChipLayout(
        name="2A03",
        channels=(
            ChannelSlot("Sq1", MelodicClassifier(divider=16)),
            ChannelSlot("Sq2", MelodicClassifier(divider=16)),
            # The triangle sequencer has 32 steps, one octave below a pulse
            ChannelSlot("Tri", MelodicClassifier(divider=32)),
            ChannelSlot("Noi", NoiseClassifier()),
            ChannelSlot("DMC", SamplePlaybackClassifier()),
        ),
        clock_rate=clock_rate,
    )


def vrc6_layout(clock_rate: float = NTSC_CPU_CLOCK) -> ChipLayout:
    """Konami VRC6 expansion: two pulses and a sawtooth.

    VRC6 registers arrive as (period, enabled, volume); ``length`` carries
    the enable flag.
    """
    return ChipLayout(
        name="VRC6",
        channels=(
            ChannelSlot("V1", MelodicClassifier(divider=16, max_amplitude=15.0)),
            ChannelSlot("V2", MelodicClassifier(divider=16, max_amplitude=15.0)),
            # 7 accumulator steps, each lasting two clocks; 6-bit rate
            ChannelSlot("Saw", MelodicClassifier(divider=14, max_amplitude=63.0)),
        ),
        clock_rate=clock_rate,
    )


EXPANSION_LAYOUTS = {
    "vrc6": vrc6_layout,
}

REGION_CLOCKS = {
    "ntsc": NTSC_CPU_CLOCK,
    "pal": PAL_CPU_CLOCK,
}
