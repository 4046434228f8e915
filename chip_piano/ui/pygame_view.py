import time
from typing import Callable, Optional

import pygame

from ..logger import get_logger
from ..note_types import RollSnapshot
from ..roll.visualization_state import OCTAVE_MAX, OCTAVE_MIN, VisualizationState
from .layout import (
    BLACK_KEY_COLOR,
    WHITE_KEY_COLOR,
    channel_color,
    key_color,
    keyboard_layout,
    note_range,
    octave_labels,
    pressed_keys,
    roll_rectangles,
    time_grid,
)

# Get logger for this module
logger = get_logger(__name__)


class PygameRollView:
    """Pygame window showing the piano roll above a keyboard.

    Keys: Left/Right shrink or grow the time window, Up/Down shift the
    octave range, Escape or closing the window quits.
    """

    def __init__(
        self,
        state: VisualizationState,
        time_source: Optional[Callable[[], float]] = None,
        width: int = 1024,
        height: int = 600,
    ):
        """Initialize the view.

        Args:
            state: Shared state to read snapshots from
            time_source: Returns the transport time for the right edge of the
                roll; defaults to the latest tick time
        """
        self.state = state
        self.time_source = time_source
        self.width = width
        self.height = height
        self.keyboard_height = 100
        self.legend_height = 24
        self.bg_color = (20, 20, 30)
        self.roll_bg_color = (25, 25, 30)
        self.text_color = (200, 200, 200)
        self.screen = None
        self.clock = None
        self.small_font = None
        self.initialized = False

        logger.debug("Initializing PygameRollView")

    def init_screen(self):
        """Initialize the Pygame screen and resources"""
        try:
            pygame.init()
            self.screen = pygame.display.set_mode((self.width, self.height))
            pygame.display.set_caption("chip-piano")
            self.small_font = pygame.font.SysFont("Arial", 14)
            self.clock = pygame.time.Clock()
            self.initialized = True
            logger.info("Pygame view initialized successfully")
            return self.screen
        except Exception as e:
            logger.error(f"Failed to initialize Pygame: {e}")
            self.cleanup()
            raise

    def run(self, keep_running: Optional[Callable[[], bool]] = None, fps: int = 60) -> None:
        """Draw until the window is closed or ``keep_running`` returns False."""
        if not self.initialized:
            self.init_screen()

        try:
            while keep_running is None or keep_running():
                if not self.handle_events():
                    break
                now = self.time_source() if self.time_source else None
                self.draw(self.state.read_snapshot(now))
                pygame.display.flip()
                self.clock.tick(fps)
        finally:
            self.cleanup()

    def handle_events(self) -> bool:
        """Process window events; returns False when the user quits."""
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return False
            if event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    return False
                self._handle_key(event.key)
        return True

    def _handle_key(self, key) -> None:
        snapshot = self.state.read_snapshot()
        low, high = snapshot.octave_low, snapshot.octave_high
        if key == pygame.K_LEFT:
            self.state.set_time_window(max(0.5, snapshot.seconds_visible / 1.5))
        elif key == pygame.K_RIGHT:
            self.state.set_time_window(min(60.0, snapshot.seconds_visible * 1.5))
        elif key == pygame.K_UP and high < OCTAVE_MAX:
            self.state.set_octave_range(low + 1, high + 1)
        elif key == pygame.K_DOWN and low > OCTAVE_MIN:
            self.state.set_octave_range(low - 1, high - 1)

    def draw(self, snapshot: RollSnapshot) -> None:
        self.screen.fill(self.bg_color)
        roll_height = self.height - self.keyboard_height - self.legend_height
        self.draw_roll(snapshot, roll_height)
        self.draw_keyboard(snapshot, roll_height)
        self.draw_legend(snapshot)

    def draw_roll(self, snapshot: RollSnapshot, roll_height: int) -> None:
        top = self.legend_height
        pygame.draw.rect(self.screen, self.roll_bg_color, (0, top, self.width, roll_height))

        start_note, end_note = note_range(snapshot.octave_low, snapshot.octave_high)
        note_height = roll_height / (end_note - start_note + 1)
        for note in range(start_note, end_note + 1):
            if note % 12 == 0:
                y = top + (end_note - note) * note_height
                pygame.draw.line(self.screen, (60, 60, 70), (0, y), (self.width, y), 2)
        for x in time_grid(snapshot, self.width):
            pygame.draw.line(self.screen, (50, 50, 60), (x, top), (x, top + roll_height))

        for rect in roll_rectangles(snapshot, self.width, roll_height):
            name = snapshot.channel_names[rect.channel] if rect.channel < len(snapshot.channel_names) else ""
            area = pygame.Rect(rect.x1, top + rect.y1, rect.x2 - rect.x1, rect.y2 - rect.y1)
            pygame.draw.rect(self.screen, channel_color(name), area, border_radius=2)
            pygame.draw.rect(self.screen, (255, 255, 255), area, 1, border_radius=2)

        # Playhead
        pygame.draw.line(self.screen, (255, 255, 255), (self.width - 1, top), (self.width - 1, top + roll_height), 2)

    def draw_keyboard(self, snapshot: RollSnapshot, top: int) -> None:
        top += self.legend_height
        keys = pressed_keys(snapshot.channels)
        for key in keyboard_layout(snapshot.octave_low, snapshot.octave_high, self.width, self.keyboard_height):
            color = BLACK_KEY_COLOR if key.is_black else WHITE_KEY_COLOR
            if key.note in keys:
                channel, velocity = keys[key.note]
                color = key_color(channel_color(snapshot.channel_names[channel]), velocity)
            area = pygame.Rect(key.x, top + key.y, key.width, key.height)
            pygame.draw.rect(self.screen, color, area, border_radius=2)
            pygame.draw.rect(self.screen, (40, 40, 40), area, 1, border_radius=2)

        for label, x in octave_labels(snapshot.octave_low, snapshot.octave_high, self.width):
            surface = self.small_font.render(label, True, (100, 100, 100))
            self.screen.blit(surface, (x, top + self.keyboard_height - 16))

    def draw_legend(self, snapshot: RollSnapshot) -> None:
        x = 8
        primary_count = len(self.state.layout)
        for index, name in enumerate(snapshot.channel_names):
            if index >= primary_count and not snapshot.expansion_enabled:
                continue
            pygame.draw.rect(self.screen, channel_color(name), (x, 5, 20, 14))
            surface = self.small_font.render(name, True, self.text_color)
            self.screen.blit(surface, (x + 24, 4))
            x += 70

        progress = self.state.progress.value
        if 0.0 < progress < 1.0:
            pygame.draw.rect(self.screen, (80, 80, 100), (self.width - 208, 6, 200, 12), 1)
            pygame.draw.rect(self.screen, (120, 200, 120), (self.width - 207, 7, 198 * progress, 10))

        status = f"{snapshot.time:7.2f}s  window {snapshot.seconds_visible:.1f}s"
        surface = self.small_font.render(status, True, self.text_color)
        self.screen.blit(surface, (x + 10, 4))

    def cleanup(self):
        """Clean up Pygame resources"""
        if self.initialized:
            pygame.quit()
            self.initialized = False
            logger.info("Pygame view cleaned up")


def show(state: VisualizationState, time_source: Optional[Callable[[], float]] = None,
         keep_running: Optional[Callable[[], bool]] = None) -> None:
    """Open a window on ``state`` and block until it is closed."""
    started = time.perf_counter()
    view = PygameRollView(state, time_source=time_source)
    view.run(keep_running)
    logger.debug(f"View closed after {time.perf_counter() - started:.1f}s")
