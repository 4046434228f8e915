import threading
import unittest

import numpy as np

from chip_piano.note_types import ChannelRegisters, RegisterTick
from chip_piano.detection.classifiers import RawPcmClassifier, nes_apu_layout, vrc6_layout
from chip_piano.detection.pitch_detector import AutocorrelationPitchDetector
from chip_piano.roll.visualization_state import ProgressCounter, VisualizationState

OFF = ChannelRegisters(0, 0, 0)
A4_PULSE = ChannelRegisters(253, 10, 15)
A4_TRIANGLE = ChannelRegisters(126, 10, 15)


def tick(time, sq1=OFF, tri=OFF, expansion=None):
    return RegisterTick(time=time, primary=[sq1, OFF, tri, OFF, OFF], expansion=expansion)


def stereo_sine(freq, frames=2048, amplitude=0.2, sample_rate=44100):
    t = np.arange(frames) / sample_rate
    mono = (amplitude * 32767 * np.sin(2 * np.pi * freq * t)).astype(np.int16)
    return np.repeat(mono, 2)


class TestVisualizationState(unittest.TestCase):
    def setUp(self):
        self.state = VisualizationState(nes_apu_layout())

    def test_apply_tick(self):
        states = self.state.apply_tick(tick(0.0, sq1=A4_PULSE))
        self.assertEqual(len(states), 5)
        self.assertTrue(states[0].active)
        self.assertEqual(states[0].note, 69)
        self.assertFalse(states[2].active)
        self.assertEqual(self.state.history_size(), 1)

    def test_snapshot(self):
        self.state.apply_tick(tick(0.0, sq1=A4_PULSE))
        self.state.apply_tick(tick(1.0, sq1=A4_PULSE, tri=A4_TRIANGLE))
        self.state.apply_tick(tick(2.0, tri=A4_TRIANGLE))

        snapshot = self.state.read_snapshot()
        self.assertEqual(snapshot.time, 2.0)
        self.assertEqual(snapshot.channel_names, ("Sq1", "Sq2", "Tri", "Noi", "DMC"))
        self.assertEqual(len(snapshot.events), 2)
        pulse = next(e for e in snapshot.events if e.channel == 0)
        self.assertFalse(pulse.active)
        self.assertAlmostEqual(pulse.duration, 2.0)
        self.assertEqual(snapshot.seconds_visible, 4.0)
        self.assertEqual((snapshot.octave_low, snapshot.octave_high), (2, 7))

    def test_snapshot_is_a_copy(self):
        self.state.apply_tick(tick(0.0, sq1=A4_PULSE))
        snapshot = self.state.read_snapshot()
        self.state.apply_tick(tick(1.0))
        self.assertTrue(snapshot.events[0].active)
        self.assertTrue(snapshot.channels[0].active)

    def test_snapshot_window(self):
        self.state.set_time_window(1.0)
        self.state.apply_tick(tick(0.0, sq1=A4_PULSE))
        self.state.apply_tick(tick(0.5))
        self.state.apply_tick(tick(3.0, tri=A4_TRIANGLE))
        snapshot = self.state.read_snapshot()
        self.assertEqual([e.channel for e in snapshot.events], [2])
        self.assertEqual(len(self.state.read_snapshot(now=1.0).events), 1)

    def test_listeners_get_transitions(self):
        ons, offs = [], []
        self.state.events.on_note_on(ons.append)
        self.state.events.on_note_off(offs.append)
        self.state.apply_tick(tick(0.0, sq1=A4_PULSE))
        self.state.apply_tick(tick(1.0))
        self.assertEqual([e.note for e in ons], [69])
        self.assertEqual(len(offs), 1)
        self.assertAlmostEqual(offs[0].duration, 1.0)

    def test_listener_can_read_state(self):
        # Listeners run after the lock is released
        seen = []
        self.state.events.on_note_on(lambda event: seen.append(self.state.history_size()))
        self.state.apply_tick(tick(0.0, sq1=A4_PULSE))
        self.assertEqual(seen, [1])

    def test_reset(self):
        self.state.apply_tick(tick(0.0, sq1=A4_PULSE))
        self.state.progress.set(0.5)
        self.state.reset()
        self.assertEqual(self.state.history_size(), 0)
        self.assertFalse(any(s.active for s in self.state.read_snapshot().channels))
        self.assertEqual(self.state.progress.value, 0.0)

    def test_seek_backwards_clears_history(self):
        self.state.apply_tick(tick(1.0, sq1=A4_PULSE))
        self.state.apply_tick(tick(2.0))
        self.state.apply_tick(tick(0.5, tri=A4_TRIANGLE))
        snapshot = self.state.read_snapshot()
        self.assertEqual(len(snapshot.events), 1)
        self.assertEqual(snapshot.events[0].channel, 2)
        self.assertEqual(snapshot.events[0].start_time, 0.5)

    def test_seek_backwards_closes_sounding_notes(self):
        ons, offs = [], []
        self.state.events.on_note_on(ons.append)
        self.state.events.on_note_off(offs.append)
        self.state.apply_tick(tick(5.0, sq1=A4_PULSE))
        self.state.apply_tick(tick(1.0))
        self.assertEqual(len(ons), 1)
        self.assertEqual(len(offs), 1)
        self.assertEqual((offs[0].channel, offs[0].note, offs[0].start_time), (0, 69, 5.0))
        self.assertFalse(offs[0].active)
        self.assertEqual(self.state.history_size(), 0)

    def test_finish_closes_notes(self):
        self.state.apply_tick(tick(0.0, sq1=A4_PULSE))
        self.state.finish(2.0)
        event = self.state.read_snapshot().events[0]
        self.assertFalse(event.active)
        self.assertAlmostEqual(event.duration, 2.0)

    def test_apply_frequencies(self):
        states = self.state.apply_frequencies([440.0, 0.0, 261.63, 0.0, 0.0], [0.8, 0.0, 0.5, 0.0, 0.0], 0.0)
        self.assertEqual([s.note for s in states], [69, None, 60, None, None])
        with self.assertRaises(ValueError):
            self.state.apply_frequencies([440.0], [1.0], 1.0)

    def test_wrong_register_count(self):
        with self.assertRaises(ValueError):
            self.state.apply_tick(RegisterTick(0.0, [OFF] * 3))


class TestSettings(unittest.TestCase):
    def setUp(self):
        self.state = VisualizationState(nes_apu_layout())

    def test_time_window(self):
        self.state.set_time_window(8.0)
        self.assertEqual(self.state.read_snapshot().seconds_visible, 8.0)
        for bad in (0.0, -1.0, float("nan"), float("inf")):
            with self.assertRaises(ValueError):
                self.state.set_time_window(bad)
        self.assertEqual(self.state.read_snapshot().seconds_visible, 8.0)

    def test_octave_range(self):
        self.state.set_octave_range(1, 8)
        snapshot = self.state.read_snapshot()
        self.assertEqual((snapshot.octave_low, snapshot.octave_high), (1, 8))
        for low, high in ((5, 5), (6, 5), (-2, 3), (0, 10)):
            with self.assertRaises(ValueError):
                self.state.set_octave_range(low, high)
        self.state.set_octave_range(-1, 9)

    def test_constructor_validation(self):
        with self.assertRaises(ValueError):
            VisualizationState(nes_apu_layout(), history_capacity=5)
        with self.assertRaises(ValueError):
            VisualizationState(nes_apu_layout(), primary_channel=5)
        with self.assertRaises(ValueError):
            VisualizationState(nes_apu_layout(), decay=1.0)
        with self.assertRaises(ValueError):
            VisualizationState(nes_apu_layout(), octave_low=7, octave_high=2)

    def test_progress_counter_clamps(self):
        progress = ProgressCounter()
        progress.set(1.5)
        self.assertEqual(progress.value, 1.0)
        progress.set(-0.5)
        self.assertEqual(progress.value, 0.0)


class TestExpansion(unittest.TestCase):
    def setUp(self):
        self.state = VisualizationState(nes_apu_layout(), vrc6_layout())
        self.saw = ChannelRegisters(290, 1, 63)

    def test_expansion_channels(self):
        self.assertEqual(self.state.channel_count, 8)
        states = self.state.apply_tick(tick(0.0, expansion=[OFF, OFF, self.saw]))
        self.assertEqual(states[7].note, 69)
        snapshot = self.state.read_snapshot()
        self.assertTrue(snapshot.expansion_enabled)
        self.assertEqual(snapshot.channel_names[5:], ("V1", "V2", "Saw"))

    def test_disabling_expansion_closes_its_notes(self):
        self.state.apply_tick(tick(0.0, expansion=[OFF, OFF, self.saw]))
        states = self.state.apply_tick(tick(1.0))
        self.assertFalse(states[7].active)
        snapshot = self.state.read_snapshot()
        self.assertFalse(snapshot.expansion_enabled)
        self.assertFalse(snapshot.events[0].active)
        self.assertAlmostEqual(snapshot.events[0].duration, 1.0)

    def test_expansion_registers_ignored_without_layout(self):
        state = VisualizationState(nes_apu_layout())
        states = state.apply_tick(tick(0.0, expansion=[OFF, OFF, self.saw]))
        self.assertEqual(len(states), 5)
        self.assertFalse(state.read_snapshot().expansion_enabled)


class TestRawPcmPath(unittest.TestCase):
    def setUp(self):
        self.state = VisualizationState(
            nes_apu_layout(), pcm_classifier=RawPcmClassifier(AutocorrelationPitchDetector())
        )

    def test_requires_classifier(self):
        with self.assertRaises(RuntimeError):
            VisualizationState(nes_apu_layout()).apply_audio(stereo_sine(440.0), 44100, 0.0)

    def test_primary_channel_gets_pitch(self):
        states = self.state.apply_audio(stereo_sine(44100 / 100.02), 44100, 0.0)
        self.assertEqual(states[2].note, 69)
        self.assertTrue(states[2].active)
        self.assertFalse(states[0].active)

    def test_short_block_skipped(self):
        self.assertIsNone(self.state.apply_audio(np.zeros(64, dtype=np.int16), 44100, 0.0))
        self.assertEqual(self.state.history_size(), 0)

    def test_other_channels_decay(self):
        self.state.apply_frequencies([261.63, 0.0, 0.0, 0.0, 0.0], [0.8, 0.0, 0.0, 0.0, 0.0], 0.0)
        states = self.state.apply_audio(stereo_sine(44100 / 100.02), 44100, 0.1)
        self.assertAlmostEqual(states[0].velocity, 0.72)
        self.assertTrue(states[0].active)

        for i in range(40):
            states = self.state.apply_audio(stereo_sine(44100 / 100.02), 44100, 0.2 + i * 0.1)
        self.assertFalse(states[0].active)
        self.assertTrue(states[2].active)


class TestConcurrency(unittest.TestCase):
    def test_producer_and_consumer(self):
        state = VisualizationState(nes_apu_layout(), history_capacity=50)
        errors = []
        done = threading.Event()

        def producer():
            try:
                for i in range(2000):
                    sq1 = ChannelRegisters(200 + i % 50, 1, 15) if i % 3 else OFF
                    tri = ChannelRegisters(100 + i % 7, 1, 15)
                    state.apply_tick(tick(i * 0.01, sq1=sq1, tri=tri))
            except Exception as e:
                errors.append(e)
            finally:
                done.set()

        def consumer():
            try:
                while not done.is_set():
                    snapshot = state.read_snapshot()
                    for channel in range(5):
                        open_events = [e for e in snapshot.events if e.channel == channel and e.active]
                        assert len(open_events) <= 1
                    assert state.history_size() <= 50
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=producer), threading.Thread(target=consumer)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(errors, [])
        self.assertEqual(state.read_snapshot().time, 1999 * 0.01)


if __name__ == "__main__":
    unittest.main()
