"""Piano-roll visualization of chiptune sound-chip channels."""

__version__ = "0.1.0"
