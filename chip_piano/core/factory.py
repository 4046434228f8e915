"""Factory for creating chip_piano components from configuration."""

from typing import Any, Callable, Dict, Optional, Tuple

from ..logger import get_logger
from ..audio.wav_source import WavFileSource
from ..detection.classifiers import (
    ChipLayout,
    EXPANSION_LAYOUTS,
    REGION_CLOCKS,
    RawPcmClassifier,
    nes_apu_layout,
)
from ..detection.pitch_detector import AutocorrelationPitchDetector
from ..roll.preprocess import TrackPreanalyzer
from ..roll.visualization_state import ProgressCounter, VisualizationState
from .config import ConfigManager
from .interfaces import IAudioSource, IPitchDetector

logger = get_logger(__name__)


def _autocorrelation_detector(settings: Dict[str, Any]) -> IPitchDetector:
    return AutocorrelationPitchDetector(
        min_correlation=settings["min_correlation"],
        max_window=settings["max_window"],
    )


def _yin_detector(settings: Dict[str, Any]) -> IPitchDetector:
    # aubio is an optional extra, only import it when asked for
    from ..detection.yin import YinPitchDetector

    return YinPitchDetector(
        min_confidence=settings["min_correlation"],
        max_window=settings["max_window"],
    )


class ComponentFactory:
    """Factory for creating chip_piano components."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        """Initialize the component factory.

        Args:
            config_manager: Configuration manager, or None to create a default one
        """
        self.config_manager = config_manager or ConfigManager()

        self.pitch_detector_builders: Dict[str, Callable[[Dict[str, Any]], IPitchDetector]] = {
            "autocorrelation": _autocorrelation_detector,
            "yin": _yin_detector,
        }

    def create_pitch_detector(self, method: Optional[str] = None, **kwargs) -> IPitchDetector:
        """Create a pitch detector for the raw-PCM fallback.

        Args:
            method: Registered method name, or None to use ``pcm_fallback.pitch_method``
            **kwargs: Overrides for the ``pcm_fallback`` section

        Raises:
            ValueError: If the method is not registered
        """
        settings = self.config_manager.get_config("pcm_fallback")
        settings.update(kwargs)
        method = method or settings["pitch_method"]
        if method not in self.pitch_detector_builders:
            raise ValueError(f"Unknown pitch detection method: {method}")

        detector = self.pitch_detector_builders[method](settings)
        logger.info(f"Created pitch detector: {method}")
        return detector

    def create_pcm_classifier(self, **kwargs) -> RawPcmClassifier:
        settings = self.config_manager.get_config("pcm_fallback")
        settings.update(kwargs)
        return RawPcmClassifier(self.create_pitch_detector(**kwargs), gain=settings["gain"])

    def create_layouts(
        self, region: Optional[str] = None, expansion: Optional[str] = None
    ) -> Tuple[ChipLayout, Optional[ChipLayout]]:
        """Create the primary layout and optional expansion layout.

        Args:
            region: "ntsc" or "pal", or None to use ``chip.region``
            expansion: Expansion chip name or "none", or None to use ``chip.expansion``

        Raises:
            ValueError: On an unknown region or expansion chip
        """
        settings = self.config_manager.get_config("chip")
        region = (region or settings["region"]).lower()
        expansion = (expansion or settings["expansion"]).lower()

        if region not in REGION_CLOCKS:
            raise ValueError(f"Unknown region: {region}")
        clock = REGION_CLOCKS[region]

        expansion_layout = None
        if expansion != "none":
            if expansion not in EXPANSION_LAYOUTS:
                raise ValueError(f"Unknown expansion chip: {expansion}")
            expansion_layout = EXPANSION_LAYOUTS[expansion](clock)

        logger.info(f"Created layouts: region={region}, expansion={expansion}")
        return nes_apu_layout(clock), expansion_layout

    def create_visualization_state(
        self,
        region: Optional[str] = None,
        expansion: Optional[str] = None,
        with_pcm: bool = False,
        **pcm_overrides,
    ) -> VisualizationState:
        """Create the shared state from the tracker, view and chip sections.

        Args:
            region: Region override
            expansion: Expansion chip override
            with_pcm: Attach a raw-PCM classifier so apply_audio() can be used
            **pcm_overrides: Overrides for the ``pcm_fallback`` section
        """
        tracker = self.config_manager.get_config("tracker")
        pcm = self.config_manager.get_config("pcm_fallback")
        pcm.update(pcm_overrides)
        view = self.config_manager.get_config("view")
        layout, expansion_layout = self.create_layouts(region, expansion)

        return VisualizationState(
            layout,
            expansion_layout,
            history_capacity=tracker["history_capacity"],
            velocity_threshold=tracker["velocity_threshold"],
            pcm_classifier=self.create_pcm_classifier(**pcm_overrides) if with_pcm else None,
            primary_channel=pcm["primary_channel"],
            decay=pcm["decay"],
            seconds_visible=view["seconds_visible"],
            octave_low=view["octave_low"],
            octave_high=view["octave_high"],
        )

    def create_preanalyzer(
        self,
        region: Optional[str] = None,
        expansion: Optional[str] = None,
        progress: Optional[ProgressCounter] = None,
    ) -> TrackPreanalyzer:
        tracker = self.config_manager.get_config("tracker")
        layout, expansion_layout = self.create_layouts(region, expansion)
        return TrackPreanalyzer(
            layout,
            expansion_layout,
            velocity_threshold=tracker["velocity_threshold"],
            progress=progress,
        )

    def create_audio_input(self, **kwargs) -> IAudioSource:
        """Create a live sounddevice input from the ``audio_input`` section."""
        # sounddevice loads PortAudio on import
        from ..audio.audio_input import SoundDeviceInput

        config = self.config_manager.get_config("audio_input")
        config.update(kwargs)
        instance = SoundDeviceInput(**config)
        logger.info("Created audio input: sounddevice")
        return instance

    def create_wav_source(self, file_path: str, **kwargs) -> WavFileSource:
        config = self.config_manager.get_config("audio_input")
        kwargs.setdefault("frames_per_buffer", config["frames_per_buffer"])
        return WavFileSource(file_path, **kwargs)

    def create_pcm_service(self, audio_source: IAudioSource, state: Optional[VisualizationState] = None):
        """Create a PCM roll service; builds a PCM-capable state if none is given."""
        from ..audio.pcm_service import PcmRollService

        state = state or self.create_visualization_state(with_pcm=True)
        service = PcmRollService(audio_source, state)
        logger.info("Created PCM roll service")
        return service
