"""Event system for chip_piano components."""

from typing import Dict, List, Callable, Any
from enum import Enum, auto

from ..logger import get_logger

logger = get_logger(__name__)


class NoteTransitionType(Enum):
    """Edges produced by the note tracker."""

    NOTE_ON = auto()
    NOTE_OFF = auto()


class EventEmitter:
    """Minimal synchronous event emitter."""

    def __init__(self):
        self._listeners: Dict[Any, List[Callable]] = {}

    def on(self, event_type: Any, callback: Callable) -> None:
        """Register a callback for an event type.

        Args:
            event_type: Event type to listen for
            callback: Function to call when the event occurs
        """
        listeners = self._listeners.setdefault(event_type, [])
        if callback not in listeners:
            listeners.append(callback)
            logger.debug(f"Added listener for event {event_type}")

    def off(self, event_type: Any, callback: Callable) -> None:
        """Remove a previously registered callback, if present."""
        listeners = self._listeners.get(event_type, [])
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event_type: Any, *args, **kwargs) -> None:
        """Emit an event.

        A failing listener is logged and the remaining listeners still run.
        """
        for callback in list(self._listeners.get(event_type, ())):
            try:
                callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_type}: {e}", exc_info=True)

    def clear(self) -> None:
        """Remove all event listeners."""
        self._listeners = {}
        logger.debug("Cleared all event listeners")


class RollEvents:
    """Note-on / note-off notifications for the piano roll."""

    def __init__(self):
        self._emitter = EventEmitter()

    def on_note_on(self, callback: Callable) -> None:
        """Register ``callback(event)`` for note onsets."""
        self._emitter.on(NoteTransitionType.NOTE_ON, callback)

    def on_note_off(self, callback: Callable) -> None:
        """Register ``callback(event)`` for closed notes."""
        self._emitter.on(NoteTransitionType.NOTE_OFF, callback)

    def emit(self, kind: NoteTransitionType, event) -> None:
        self._emitter.emit(kind, event)

    def clear(self) -> None:
        """Remove all event listeners."""
        self._emitter.clear()
