"""Renderer-independent geometry for the keyboard and the piano roll.

Everything here works on a :class:`RollSnapshot` and plain numbers so the
pygame viewer only has to draw rectangles.
"""

from __future__ import annotations
from typing import Dict, Iterable, List, NamedTuple, Tuple

from ..note_types import ChannelState, RollSnapshot
from ..note_utils import is_black_key, position_in_octave
from ..detection.classifiers import VELOCITY_THRESHOLD

Color = Tuple[int, int, int]

CHANNEL_COLORS: Dict[str, Color] = {
    "Sq1": (255, 80, 80),
    "Sq2": (255, 160, 60),
    "Tri": (80, 180, 255),
    "Noi": (230, 80, 230),
    "DMC": (230, 230, 80),
    "V1": (120, 230, 120),
    "V2": (80, 200, 170),
    "Saw": (200, 140, 255),
}
FALLBACK_COLOR: Color = (200, 200, 200)

WHITE_KEY_COLOR: Color = (250, 250, 250)
BLACK_KEY_COLOR: Color = (30, 30, 35)
BLACK_KEY_WIDTH_RATIO = 0.65
BLACK_KEY_HEIGHT_RATIO = 0.6


class KeyRect(NamedTuple):
    note: int
    x: float
    y: float
    width: float
    height: float
    is_black: bool


class NoteRect(NamedTuple):
    channel: int
    note: int
    x1: float
    y1: float
    x2: float
    y2: float
    active: bool


def channel_color(name: str) -> Color:
    return CHANNEL_COLORS.get(name, FALLBACK_COLOR)


def key_color(base: Color, velocity: float) -> Color:
    """Scale a channel color by velocity, from half to full brightness."""
    bright = 0.5 + 0.5 * min(1.0, max(0.0, velocity))
    return tuple(int(c * bright) for c in base)


def note_range(octave_low: int, octave_high: int) -> Tuple[int, int]:
    """First and last visible note: C of ``octave_low`` to C of ``octave_high``."""
    return octave_low * 12 + 12, octave_high * 12 + 12


def pressed_keys(
    channels: Iterable[ChannelState], threshold: float = VELOCITY_THRESHOLD
) -> Dict[int, Tuple[int, float]]:
    """Map each sounding note to the channel that owns its key.

    When several channels play the same note the loudest wins; on an exact
    velocity tie the later channel wins.

    Returns:
        ``{note: (channel, velocity)}``
    """
    keys: Dict[int, Tuple[int, float]] = {}
    for state in channels:
        if not state.active or state.note is None or state.velocity <= threshold:
            continue
        current = keys.get(state.note)
        if current is None or state.velocity >= current[1]:
            keys[state.note] = (state.channel, state.velocity)
    return keys


def keyboard_layout(octave_low: int, octave_high: int, width: float, height: float) -> List[KeyRect]:
    """Key rectangles, white keys first so black keys can be drawn on top."""
    start, end = note_range(octave_low, octave_high)
    white_notes = [n for n in range(start, end + 1) if not is_black_key(n)]
    white_width = width / len(white_notes)
    black_width = white_width * BLACK_KEY_WIDTH_RATIO
    black_height = height * BLACK_KEY_HEIGHT_RATIO

    whites = []
    blacks = []
    for index, note in enumerate(white_notes):
        x = index * white_width
        whites.append(KeyRect(note, x, 0.0, white_width - 1, height, False))
        if note + 1 <= end and is_black_key(note + 1):
            blacks.append(
                KeyRect(note + 1, x + white_width - black_width / 2, 0.0, black_width, black_height, True)
            )
    return whites + blacks


def octave_labels(octave_low: int, octave_high: int, width: float) -> List[Tuple[str, float]]:
    """``("C4", x)`` pairs for every C on the keyboard."""
    labels = []
    for key in keyboard_layout(octave_low, octave_high, width, 1.0):
        if not key.is_black and position_in_octave(key.note) == 0:
            labels.append((f"C{key.note // 12 - 1}", key.x + 2))
    return labels


def roll_rectangles(snapshot: RollSnapshot, width: float, height: float) -> List[NoteRect]:
    """Rectangles for the events in a snapshot, clamped to the roll area.

    Time runs left to right with ``snapshot.time`` at the right edge; higher
    notes are nearer the top. Events outside the octave range or the time
    window are dropped.
    """
    start_note, end_note = note_range(snapshot.octave_low, snapshot.octave_high)
    note_height = height / (end_note - start_note + 1)
    time_start = snapshot.time - snapshot.seconds_visible
    pixels_per_second = width / snapshot.seconds_visible

    rects = []
    for event in snapshot.events:
        if not start_note <= event.note <= end_note:
            continue
        end_time = event.end_time(snapshot.time)
        if end_time < time_start or event.start_time > snapshot.time:
            continue

        x1 = max(0.0, (event.start_time - time_start) * pixels_per_second)
        x2 = min(width, (end_time - time_start) * pixels_per_second)
        if x2 <= x1:
            continue
        y = (end_note - event.note) * note_height
        rects.append(NoteRect(event.channel, event.note, x1, y + 1, x2, y + note_height - 1, event.active))
    return rects


def time_grid(snapshot: RollSnapshot, width: float, step: float = 0.5) -> List[float]:
    """X positions of the vertical grid lines, one every ``step`` seconds."""
    time_start = snapshot.time - snapshot.seconds_visible
    pixels_per_second = width / snapshot.seconds_visible
    first = int(time_start // step)
    positions = []
    t = first * step
    while t <= snapshot.time:
        x = (t - time_start) * pixels_per_second
        if 0.0 <= x <= width:
            positions.append(x)
        first += 1
        t = first * step
    return positions
