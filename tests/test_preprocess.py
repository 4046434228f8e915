import unittest

import numpy as np

from chip_piano.note_types import ChannelRegisters, RegisterTick
from chip_piano.detection.classifiers import RawPcmClassifier, nes_apu_layout, vrc6_layout
from chip_piano.detection.pitch_detector import AutocorrelationPitchDetector
from chip_piano.roll.preprocess import TrackPreanalyzer
from chip_piano.roll.visualization_state import ProgressCounter

OFF = ChannelRegisters(0, 0, 0)
A4_PULSE = ChannelRegisters(253, 10, 15)


def stereo_sine(freq, frames=2048, amplitude=0.2, sample_rate=44100):
    t = np.arange(frames) / sample_rate
    mono = (amplitude * 32767 * np.sin(2 * np.pi * freq * t)).astype(np.int16)
    return np.repeat(mono, 2)


class TestTraceAnalysis(unittest.TestCase):
    def setUp(self):
        self.progress = ProgressCounter()
        self.analyzer = TrackPreanalyzer(nes_apu_layout(), progress=self.progress)

    def test_complete_note_list(self):
        ticks = [RegisterTick(i / 60, [A4_PULSE if 10 <= i < 40 else OFF, OFF, OFF, OFF, OFF]) for i in range(60)]
        events = self.analyzer.analyze_trace(ticks)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].note, 69)
        self.assertAlmostEqual(events[0].start_time, 10 / 60)
        self.assertAlmostEqual(events[0].duration, 30 / 60)
        self.assertEqual(self.progress.value, 1.0)

    def test_notes_open_at_the_end_are_closed(self):
        ticks = [RegisterTick(i / 60, [A4_PULSE, OFF, OFF, OFF, OFF]) for i in range(30)]
        events = self.analyzer.analyze_trace(iter(ticks), total=30)
        self.assertFalse(events[0].active)
        self.assertAlmostEqual(events[0].duration, 29 / 60)

    def test_unbounded_history(self):
        # 2500 staccato notes, more than a live history would keep
        ticks = []
        for i in range(5000):
            sq1 = A4_PULSE if i % 2 == 0 else OFF
            ticks.append(RegisterTick(i / 60, [sq1, OFF, OFF, OFF, OFF]))
        events = self.analyzer.analyze_trace(ticks)
        self.assertEqual(len(events), 2500)

    def test_backwards_time(self):
        ticks = [RegisterTick(1.0, [OFF] * 5), RegisterTick(0.5, [OFF] * 5)]
        with self.assertRaises(ValueError):
            self.analyzer.analyze_trace(ticks)

    def test_expansion(self):
        analyzer = TrackPreanalyzer(nes_apu_layout(), vrc6_layout())
        self.assertEqual(analyzer.channel_names[-1], "Saw")
        ticks = [
            RegisterTick(0.0, [OFF] * 5, expansion=[OFF, OFF, ChannelRegisters(290, 1, 63)]),
            RegisterTick(0.5, [OFF] * 5, expansion=None),
        ]
        events = analyzer.analyze_trace(ticks)
        self.assertEqual([(e.channel, e.note) for e in events], [(7, 69)])
        self.assertAlmostEqual(events[0].duration, 0.5)


class TestPcmAnalysis(unittest.TestCase):
    def test_sine_then_silence(self):
        analyzer = TrackPreanalyzer(nes_apu_layout())
        classifier = RawPcmClassifier(AutocorrelationPitchDetector())
        blocks = [stereo_sine(44100 / 100.02) for _ in range(5)] + [np.zeros(4096, dtype=np.int16)] * 2

        events = analyzer.analyze_pcm(blocks, 44100, classifier, total_frames=7 * 2048)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].channel, 2)
        self.assertEqual(events[0].note, 69)
        self.assertEqual(events[0].start_time, 0.0)
        self.assertAlmostEqual(events[0].duration, 5 * 2048 / 44100)
        self.assertEqual(analyzer.progress.value, 1.0)

    def test_short_blocks_are_skipped(self):
        analyzer = TrackPreanalyzer(nes_apu_layout())
        classifier = RawPcmClassifier(AutocorrelationPitchDetector())
        events = analyzer.analyze_pcm([np.zeros(100, dtype=np.int16)] * 3, 44100, classifier)
        self.assertEqual(events, [])


if __name__ == "__main__":
    unittest.main()
