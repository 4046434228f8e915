"""Command-line interface for chip_piano."""

from .main import cli

__all__ = ["cli"]
