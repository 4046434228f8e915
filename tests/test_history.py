import unittest

from chip_piano.note_types import NoteEvent, Observation, SILENT
from chip_piano.roll.history import HistoryLog, TrackerInvariantError
from chip_piano.roll.note_tracker import NoteTracker


def closed(note, start, duration=1.0, channel=0):
    return NoteEvent(channel, note, 0.5, start, duration=duration, active=False)


class TestHistoryLog(unittest.TestCase):
    def test_evicts_oldest_closed(self):
        log = HistoryLog(3)
        first = closed(60, 0.0)
        for event in (first, closed(61, 1.0), closed(62, 2.0)):
            self.assertIsNone(log.append(event))
        self.assertIs(log.append(closed(63, 3.0)), first)
        self.assertEqual([e.note for e in log], [61, 62, 63])

    def test_open_events_are_skipped(self):
        log = HistoryLog(3)
        sustained = NoteEvent(0, 48, 0.5, 0.0)
        log.append(sustained)
        log.append(closed(61, 1.0, channel=1))
        log.append(closed(62, 2.0, channel=1))
        evicted = log.append(closed(63, 3.0, channel=1))
        self.assertEqual(evicted.note, 61)
        self.assertEqual([e.note for e in log], [48, 62, 63])
        self.assertEqual(len(log), 3)

    def test_default_capacity_scenario(self):
        log = HistoryLog()
        sustained = NoteEvent(0, 48, 0.5, 0.0)
        log.append(sustained)
        for i in range(1999):
            log.append(closed(60, float(i + 1), channel=1))
        self.assertEqual(len(log), 2000)

        evicted = log.append(closed(61, 3000.0, channel=1))
        self.assertEqual(evicted.start_time, 1.0)
        self.assertEqual(len(log), 2000)
        self.assertIs(next(iter(log)), sustained)

    def test_full_of_open_events(self):
        log = HistoryLog(1)
        log.append(NoteEvent(0, 60, 0.5, 0.0))
        with self.assertRaises(TrackerInvariantError):
            log.append(NoteEvent(1, 62, 0.5, 0.0))

    def test_unbounded(self):
        log = HistoryLog(None)
        for i in range(5000):
            log.append(closed(60, float(i)))
        self.assertEqual(len(log), 5000)
        self.assertIsNone(log.capacity)

    def test_invalid_capacity(self):
        with self.assertRaises(ValueError):
            HistoryLog(0)

    def test_visible_window(self):
        log = HistoryLog()
        log.append(closed(60, 0.0, duration=1.0))  # ends at 1.0
        log.append(closed(62, 2.0, duration=1.0))  # 2.0 - 3.0
        log.append(NoteEvent(0, 64, 0.5, 4.0))  # still sounding
        self.assertEqual([e.note for e in log.visible(1.5, 5.0)], [62, 64])
        self.assertEqual([e.note for e in log.visible(0.0, 1.0)], [60])
        self.assertEqual(log.visible(3.5, 3.9), [])

    def test_clear(self):
        log = HistoryLog()
        log.append(closed(60, 0.0))
        log.clear()
        self.assertEqual(len(log), 0)


class TestHistoryWithTracker(unittest.TestCase):
    def test_long_note_survives_capacity(self):
        history = HistoryLog(2000)
        tracker = NoteTracker(2, history)
        tracker.observe(0, Observation(48, 0.9), 0.0)

        # Channel 1 toggles a note on and off 2500 times
        t = 0.0
        for i in range(2500):
            t += 0.01
            tracker.observe(1, Observation(60 + i % 12, 0.5), t)
            t += 0.01
            tracker.observe(1, SILENT, t)
            self.assertLessEqual(len(history), 2000)

        self.assertEqual(len(history), 2000)
        sustained = tracker.open_event(0)
        self.assertIn(sustained, list(history))
        self.assertEqual(sustained.start_time, 0.0)

        tracker.observe(0, SILENT, t + 1.0)
        self.assertAlmostEqual(sustained.duration, t + 1.0)


if __name__ == "__main__":
    unittest.main()
