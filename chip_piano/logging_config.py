"""Centralized logging configuration for chip_piano.

The CLI calls :func:`setup_logging` once at startup. Library modules only ever
fetch loggers through :func:`chip_piano.logger.get_logger`.
"""

import logging
import sys
from typing import Optional

# Log levels for different modules
MODULE_LOG_LEVELS = {
    # Core modules
    "chip_piano": logging.INFO,
    "chip_piano.core": logging.INFO,
    "chip_piano.trace": logging.INFO,
    # Note tracking runs once per audio block, DEBUG here is very chatty
    "chip_piano.roll": logging.INFO,
    "chip_piano.detection": logging.INFO,
    "chip_piano.audio": logging.INFO,
    "chip_piano.cli": logging.INFO,
    "chip_piano.ui": logging.WARNING,  # UI modules often noisy, keep at WARNING
    # Libraries/third-party
    "pygame": logging.ERROR,
    # Root logger
    "": logging.ERROR,
}

# Shared console handler
_console_handler: Optional[logging.Handler] = None


def setup_logging(level: Optional[str] = None) -> None:
    """Set up logging configuration for the application.

    Args:
        level: If provided, override all 'chip_piano' log levels with this level (e.g., "DEBUG").
    """
    global _console_handler

    # Create a single, shared console handler if it doesn't exist
    if _console_handler is None:
        _console_handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        _console_handler.setFormatter(formatter)

    log_levels = MODULE_LOG_LEVELS.copy()
    if level:
        numeric_level = logging.getLevelName(level.upper())
        if isinstance(numeric_level, int):
            for module_name in log_levels:
                if module_name.startswith("chip_piano"):
                    log_levels[module_name] = numeric_level
        else:
            logging.getLogger(__name__).error(f"Invalid log level: {level}")

    for module_name, module_level in log_levels.items():
        logging.getLogger(module_name).setLevel(module_level)

    # Everything propagates to the root logger, which owns the one handler
    root = logging.getLogger()
    if _console_handler not in root.handlers:
        root.addHandler(_console_handler)

    logging.getLogger("chip_piano").info("Logging configuration complete")
