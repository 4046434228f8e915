"""Core components for the chip_piano application."""

# Import interfaces for easier access
from .interfaces import (
    IPitchDetector,
    IAudioSource,
    PitchEstimate,
    NO_PITCH,
)

__all__ = ["IPitchDetector", "IAudioSource", "PitchEstimate", "NO_PITCH"]
