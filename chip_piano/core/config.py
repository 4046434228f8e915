"""Configuration management for chip_piano components."""

from typing import Dict, Any, Optional
import copy
import json
import os
from pathlib import Path

from ..logger import get_logger

logger = get_logger(__name__)


DEFAULT_CONFIGS: Dict[str, Dict[str, Any]] = {
    "tracker": {
        "velocity_threshold": 0.05,
        "history_capacity": 2000,
    },
    "pcm_fallback": {
        "gain": 3.0,
        "decay": 0.9,
        "primary_channel": 2,
        "pitch_method": "autocorrelation",
        "max_window": 4096,
        "min_correlation": 0.5,
    },
    "view": {
        "seconds_visible": 4.0,
        "octave_low": 2,
        "octave_high": 7,
    },
    "audio_input": {
        "sample_rate": 44100,
        "frames_per_buffer": 1024,
        "channels": 2,
    },
    "chip": {
        "region": "ntsc",
        "expansion": "none",
    },
}


class ConfigManager:
    """Persistent settings, one ``<section>.json`` file per section.

    The section names and their keys are fixed by :data:`DEFAULT_CONFIGS`.
    Missing files are written from the defaults and missing keys are filled
    in on load, so a config directory from an older version keeps working.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """Open (and create if needed) the configuration directory.

        Args:
            config_dir: Directory holding the section files, or None for
                ``~/.config/chip_piano``
        """
        if config_dir is None:
            config_dir = os.path.join(os.path.expanduser("~"), ".config", "chip_piano")
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.configs: Dict[str, Dict[str, Any]] = {
            section: self._load_section(section) for section in DEFAULT_CONFIGS
        }

    def _section_file(self, section: str) -> Path:
        return self.config_dir / f"{section}.json"

    def _load_section(self, section: str) -> Dict[str, Any]:
        defaults = copy.deepcopy(DEFAULT_CONFIGS[section])
        path = self._section_file(section)
        if not path.exists():
            self._write(path, defaults)
            return defaults

        # A broken file is left in place for the user to fix
        try:
            with open(path, "r") as f:
                stored = json.load(f)
            if not isinstance(stored, dict):
                raise ValueError("top-level value must be an object")
        except (OSError, ValueError) as e:
            logger.error(f"Ignoring unreadable settings in {path}: {e}")
            return defaults

        logger.info(f"Loaded {section} settings from {path}")
        defaults.update(stored)
        return defaults

    @staticmethod
    def _write(path: Path, values: Dict[str, Any]) -> bool:
        try:
            with open(path, "w") as f:
                json.dump(values, f, indent=2)
        except OSError as e:
            logger.error(f"Could not write settings to {path}: {e}")
            return False
        logger.info(f"Wrote settings to {path}")
        return True

    def get_config(self, section: str) -> Dict[str, Any]:
        """Get a copy of a configuration section, empty if unknown."""
        return self.configs.get(section, {}).copy()

    def update_config(self, section: str, updates: Dict[str, Any]) -> bool:
        """Change keys of a section and write it back to disk.

        Keys that the section does not define are rejected, which catches
        typos before they silently fall back to a default.

        Returns:
            True if the section was updated and saved
        """
        if section not in self.configs:
            logger.error(f"Unknown settings section: {section}")
            return False
        unknown = sorted(set(updates) - set(DEFAULT_CONFIGS[section]))
        if unknown:
            logger.error(f"Unknown {section} settings: {', '.join(unknown)}")
            return False

        self.configs[section].update(updates)
        return self._write(self._section_file(section), self.configs[section])
