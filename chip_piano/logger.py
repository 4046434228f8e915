"""Centralized lazy-loading logger lookup for chip_piano."""
import logging
from typing import Dict

# Module-level cache for loggers
_logger_cache: Dict[str, logging.Logger] = {}

# Library code stays silent until an application calls setup_logging()
logging.getLogger("chip_piano").addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """
    Get a lazily initialized logger with the given name.

    Args:
        name: The full module name (e.g., 'chip_piano.roll.note_tracker')

    Returns:
        The cached logger instance for that name
    """
    logger = _logger_cache.get(name)
    if logger is None:
        logger = logging.getLogger(name)
        _logger_cache[name] = logger
    return logger
