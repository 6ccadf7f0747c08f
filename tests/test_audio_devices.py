import unittest

import numpy as np

from fitcore.playback import AudioPlaybackScheduler

try:
    from PySide6.QtCore import QCoreApplication

    from livesession.audio_devices import SoundDevicePlaybackEngine
except (ModuleNotFoundError, OSError):
    QCoreApplication = None
    SoundDevicePlaybackEngine = None


@unittest.skipIf(SoundDevicePlaybackEngine is None, "sounddevice/PortAudio or PySide6 unavailable")
class SoundDevicePlaybackEngineTest(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = QCoreApplication.instance() or QCoreApplication([])

    def setUp(self):
        self.engine = SoundDevicePlaybackEngine(samplerate=24000)

    def render(self, frames):
        out = np.zeros((frames, 1), dtype=np.float32)
        self.engine._callback(out, frames, None, None)
        return out[:, 0]

    def test_clock_counts_rendered_frames(self):
        self.assertEqual(self.engine.current_time, 0.0)
        self.render(240)
        self.assertAlmostEqual(self.engine.current_time, 0.01)

    def test_sources_mix_at_sample_offsets(self):
        ended = []
        self.engine.play(np.full(100, 0.25), start_time=10 / 24000, on_ended=lambda: ended.append(1))

        first = self.render(64)
        self.assertTrue(np.all(first[:10] == 0.0))
        self.assertTrue(np.allclose(first[10:], 0.25))
        self.assertEqual(ended, [])

        second = self.render(64)
        self.assertTrue(np.allclose(second[:46], 0.25))
        self.assertTrue(np.all(second[46:] == 0.0))
        self.assertEqual(ended, [1])

    def test_stopped_source_is_silent(self):
        source = self.engine.play(np.full(64, 0.5), start_time=0.0)
        source.stop()
        self.assertTrue(np.all(self.render(64) == 0.0))

    def test_scheduler_drives_engine_clock(self):
        scheduler = AudioPlaybackScheduler(self.engine, sample_rate=24000)
        scheduler.schedule_samples(np.zeros(240, dtype=np.float32))
        self.render(480)
        self.assertEqual(scheduler.active_count, 0)

        chunk = scheduler.schedule_samples(np.zeros(240, dtype=np.float32))
        self.assertAlmostEqual(chunk.start_time, 0.02)


if __name__ == "__main__":
    unittest.main()
