"""Utility functions for working with MIDI notes and frequencies.

Notes are MIDI numbers in 12-tone equal temperament with A4 (69) at 440 Hz.
None stands for "no note".
"""

import math
from typing import Optional

import numpy as np

A4_FREQ = 440.0
A4_NOTE = 69
NOTE_MIN = 0
NOTE_MAX = 127

# Chromatic positions of the black keys in a C-based octave
BLACK_KEY_POSITIONS = frozenset({1, 3, 6, 8, 10})

# Number of white keys before each position in the octave
WHITE_KEY_OFFSETS = (0, 0, 1, 1, 2, 3, 3, 4, 4, 5, 5, 6)

NOTE_NAMES_SHARPS = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
NOTE_NAMES_FLATS = ["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]


def frequency_to_note(freq: float) -> Optional[int]:
    """Quantize a frequency to the nearest MIDI note.

    note = round(69 + 12 * log2(freq / 440)), rounding exact midpoints up.

    Args:
        freq: Frequency in Hz

    Returns:
        The MIDI note number, or None if freq is not a positive finite number
        or the note falls outside 0-127
    """
    if freq is None or not np.isfinite(freq) or freq <= 0:
        return None

    exact = A4_NOTE + 12.0 * float(np.log2(freq / A4_FREQ))
    note = math.floor(exact + 0.5)
    if note < NOTE_MIN or note > NOTE_MAX:
        return None
    return note


def note_to_frequency(note: int) -> float:
    """Return the equal-tempered frequency of a MIDI note in Hz."""
    return A4_FREQ * 2.0 ** ((note - A4_NOTE) / 12.0)


def is_black_key(note: int) -> bool:
    return note % 12 in BLACK_KEY_POSITIONS


def octave_of(note: int) -> int:
    """MIDI octave convention: note 60 (middle C) is in octave 4."""
    return note // 12 - 1


def position_in_octave(note: int) -> int:
    """0 for C up to 11 for B."""
    return note % 12


def white_key_index(note: int) -> int:
    """Index of the key among all white keys counted from note 0.

    Black keys share the index of the white key just below them.
    """
    return (note // 12) * 7 + WHITE_KEY_OFFSETS[note % 12]


def get_note_name(note: Optional[int], use_flats: bool = False) -> str:
    """Convert a MIDI note to Scientific Pitch Notation (SPN).

    Args:
        note: MIDI note number, or None
        use_flats: If True, use flat notes (e.g., 'Bb') instead of sharps (e.g., 'A#')

    Returns:
        Note name with octave (e.g., 'A4', 'C#4', 'Bb3'), or '---' for no note
    """
    if note is None:
        return "---"
    names = NOTE_NAMES_FLATS if use_flats else NOTE_NAMES_SHARPS
    return f"{names[position_in_octave(note)]}{octave_of(note)}"
