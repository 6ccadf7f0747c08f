import unittest

from fitcore.landmarks import BodyPart
from fitcore.velocity import (
    ZERO_UPDATE,
    VelocityTracker,
    calibrate_scale_from_shoulders,
    estimate_power,
)

from pose_fixtures import make_landmarks, set_point


class VelocityTrackerTest(unittest.TestCase):
    def setUp(self):
        self.tracker = VelocityTracker(pixels_to_meters=0.0025)

    def test_first_frame_is_zero(self):
        self.assertEqual(self.tracker.update((100, 100), 0.0), ZERO_UPDATE)

    def test_constant_motion_is_smoothed(self):
        self.tracker.update((0, 0), 0.0)
        first = self.tracker.update((100, 0), 0.1)
        second = self.tracker.update((200, 0), 0.2)

        # 100 px / 0.1 s at 2.5 mm per pixel is 2.5 m/s raw.
        self.assertAlmostEqual(first.velocity, 0.75)
        self.assertFalse(first.is_explosive)
        self.assertAlmostEqual(second.velocity, 0.75 * 0.7 + 2.5 * 0.3)
        self.assertTrue(second.is_explosive)
        self.assertAlmostEqual(second.vector[0], 1000.0)
        self.assertAlmostEqual(second.vector[1], 0.0)
        self.assertEqual(second.as_dict()["is_explosive"], True)

    def test_zero_dt_restarts_without_spike(self):
        self.tracker.update((0, 0), 0.0)
        self.tracker.update((100, 0), 0.1)

        stalled = self.tracker.update((400, 0), 0.1)
        self.assertEqual(stalled.velocity, 0.0)
        self.assertFalse(stalled.is_explosive)

        resumed = self.tracker.update((410, 0), 0.2)
        self.assertAlmostEqual(resumed.velocity, 0.3 * (10 * 0.0025 / 0.1))

    def test_stale_gap_restarts(self):
        self.tracker.update((0, 0), 0.0)
        gap = self.tracker.update((500, 0), 1.5)
        self.assertEqual(gap, ZERO_UPDATE)
        self.assertEqual(self.tracker.state.last_position, (500.0, 0.0))
        self.assertEqual(self.tracker.state.smoothed_velocity, 0.0)

    def test_backwards_clock_restarts(self):
        self.tracker.update((0, 0), 1.0)
        self.assertEqual(self.tracker.update((50, 0), 0.5), ZERO_UPDATE)

    def test_invalid_scale_is_ignored(self):
        self.tracker.set_scale(0)
        self.assertEqual(self.tracker.pixels_to_meters, 0.0025)
        self.tracker.set_scale(0.001)
        self.assertEqual(self.tracker.pixels_to_meters, 0.001)


class PowerAndCalibrationTest(unittest.TestCase):
    def test_power(self):
        self.assertAlmostEqual(estimate_power(20, 1.5), 20 * 9.81 * 1.5)
        self.assertEqual(estimate_power(0, 3.0), 0.0)

    def test_shoulder_calibration(self):
        skeleton = make_landmarks()
        set_point(skeleton, BodyPart.LEFT_SHOULDER, 0.4, 0.3)
        set_point(skeleton, BodyPart.RIGHT_SHOULDER, 0.6, 0.3)
        scale = calibrate_scale_from_shoulders(skeleton, 640)
        self.assertAlmostEqual(scale, 0.4 / (0.2 * 640))

    def test_calibration_rejects_tiny_shoulders(self):
        skeleton = make_landmarks()
        set_point(skeleton, BodyPart.LEFT_SHOULDER, 0.48, 0.3)
        set_point(skeleton, BodyPart.RIGHT_SHOULDER, 0.52, 0.3)
        self.assertIsNone(calibrate_scale_from_shoulders(skeleton, 640))
        self.assertIsNone(calibrate_scale_from_shoulders(None, 640))


if __name__ == "__main__":
    unittest.main()
