import unittest

from chip_piano.core.events import EventEmitter, NoteTransitionType, RollEvents
from chip_piano.note_types import NoteEvent


class TestEventEmitter(unittest.TestCase):
    def test_on_emit_off(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("tick", calls.append)
        emitter.on("tick", calls.append)  # registered once
        emitter.emit("tick", 1)
        emitter.off("tick", calls.append)
        emitter.emit("tick", 2)
        self.assertEqual(calls, [1])

    def test_failing_listener_does_not_stop_others(self):
        emitter = EventEmitter()
        calls = []

        def broken(_value):
            raise RuntimeError("boom")

        emitter.on("tick", broken)
        emitter.on("tick", calls.append)
        with self.assertLogs("chip_piano.core.events", level="ERROR"):
            emitter.emit("tick", 7)
        self.assertEqual(calls, [7])

    def test_clear(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("tick", calls.append)
        emitter.clear()
        emitter.emit("tick", 1)
        self.assertEqual(calls, [])


class TestRollEvents(unittest.TestCase):
    def test_dispatch_by_kind(self):
        events = RollEvents()
        ons, offs = [], []
        events.on_note_on(ons.append)
        events.on_note_off(offs.append)
        note = NoteEvent(0, 60, 0.5, 0.0)
        events.emit(NoteTransitionType.NOTE_ON, note)
        self.assertEqual(ons, [note])
        self.assertEqual(offs, [])


if __name__ == "__main__":
    unittest.main()
