import unittest

import numpy as np

from chip_piano.core.interfaces import NO_PITCH
from chip_piano.detection.pitch_detector import AutocorrelationPitchDetector

SAMPLE_RATE = 44100


def sine(freq, n=4096, amplitude=0.5, sample_rate=SAMPLE_RATE):
    t = np.arange(n) / sample_rate
    return amplitude * np.sin(2 * np.pi * freq * t)


class TestAutocorrelationPitchDetector(unittest.TestCase):
    def setUp(self):
        self.detector = AutocorrelationPitchDetector()

    def test_detects_sine(self):
        # Periods just above a whole number of samples put the peak on that lag
        for period in (100.02, 220.02, 50.01):
            with self.subTest(period=period):
                estimate = self.detector.detect(sine(SAMPLE_RATE / period), SAMPLE_RATE)
                self.assertAlmostEqual(estimate.frequency, SAMPLE_RATE / round(period), places=6)
                self.assertGreater(estimate.confidence, 0.9)

    def test_musical_pitches_keep_their_octave(self):
        # Whole-sample lags two or more periods long fit these better than one period
        for freq in (110.0, 220.0, 261.63, 440.0, 880.0, 1000.0, 1500.0):
            with self.subTest(freq=freq):
                estimate = self.detector.detect(sine(freq), SAMPLE_RATE)
                self.assertAlmostEqual(estimate.frequency, freq, delta=freq * 0.02)
                self.assertGreater(estimate.confidence, 0.9)

    def test_square_wave(self):
        square = np.sign(sine(SAMPLE_RATE / 150.01))
        estimate = self.detector.detect(square, SAMPLE_RATE)
        self.assertAlmostEqual(estimate.frequency, SAMPLE_RATE / 150, delta=1.0)

    def test_noise_has_no_pitch(self):
        noise = np.random.default_rng(1234).normal(0.0, 0.3, 4096)
        self.assertEqual(self.detector.detect(noise, SAMPLE_RATE), NO_PITCH)

    def test_silence_has_no_pitch(self):
        self.assertEqual(self.detector.detect(np.zeros(4096), SAMPLE_RATE), NO_PITCH)

    def test_too_few_samples(self):
        self.assertEqual(self.detector.detect(sine(440.0, n=63), SAMPLE_RATE), NO_PITCH)
        self.assertEqual(self.detector.detect(sine(440.0), 0), NO_PITCH)

    def test_window_is_capped(self):
        detector = AutocorrelationPitchDetector(max_window=2048)
        estimate = detector.detect(sine(SAMPLE_RATE / 100.02, n=20000), SAMPLE_RATE)
        self.assertAlmostEqual(estimate.frequency, SAMPLE_RATE / 100, places=6)

    def test_amplitude_does_not_matter(self):
        quiet = self.detector.detect(sine(SAMPLE_RATE / 100.02, amplitude=0.001), SAMPLE_RATE)
        loud = self.detector.detect(sine(SAMPLE_RATE / 100.02, amplitude=1.0), SAMPLE_RATE)
        self.assertEqual(quiet.frequency, loud.frequency)
        self.assertAlmostEqual(quiet.confidence, loud.confidence)

    def test_invalid_settings(self):
        with self.assertRaises(ValueError):
            AutocorrelationPitchDetector(min_correlation=1.0)
        with self.assertRaises(ValueError):
            AutocorrelationPitchDetector(max_window=10)


if __name__ == "__main__":
    unittest.main()
