"""Presentation for chip_piano: keyboard and roll geometry plus the pygame viewer.

The viewer lives in :mod:`chip_piano.ui.pygame_view` and is imported on demand,
so the geometry helpers work without a display.
"""
