import random
import unittest
from types import SimpleNamespace

from fitcore.landmarks import BodyPart, Landmark, get_landmark, require_landmarks
from fitcore.utils import (
    calculate_bend_angle,
    calculate_distance,
    calculate_joint_angle,
    midpoint,
    smooth_value,
)


class JointAngleTest(unittest.TestCase):
    def test_right_angle(self):
        self.assertAlmostEqual(calculate_joint_angle((1, 0), (0, 0), (0, 1)), 90.0)

    def test_straight_line_is_180(self):
        self.assertAlmostEqual(calculate_joint_angle((0, 0), (0.5, 0.5), (1, 1)), 180.0)

    def test_accepts_landmark_objects(self):
        a = SimpleNamespace(x=0.0, y=1.0)
        b = Landmark(x=0.0, y=0.0)
        c = SimpleNamespace(x=1.0, y=1.0)
        self.assertAlmostEqual(calculate_joint_angle(a, b, c), 45.0)

    def test_range_and_symmetry(self):
        rng = random.Random(7)
        for _ in range(200):
            a, b, c = [(rng.random(), rng.random()) for _ in range(3)]
            angle = calculate_joint_angle(a, b, c)
            self.assertGreaterEqual(angle, 0.0)
            self.assertLessEqual(angle, 180.0)
            self.assertAlmostEqual(angle, calculate_joint_angle(c, b, a), places=6)

    def test_reflex_angle_is_folded(self):
        # 270 degrees measured one way is 90 degrees the other.
        self.assertAlmostEqual(calculate_joint_angle((0, -1), (0, 0), (-1, 0)), 90.0)


class GeometryHelpersTest(unittest.TestCase):
    def test_distance(self):
        self.assertAlmostEqual(calculate_distance((0, 0), (3, 4)), 5.0)

    def test_midpoint(self):
        self.assertEqual(midpoint((0, 0), (1, 2)), (0.5, 1.0))

    def test_bend_angle_vertical_is_zero(self):
        self.assertAlmostEqual(calculate_bend_angle((0.5, 0.2), (0.5, 0.6)), 0.0)

    def test_bend_angle_sign_depends_on_direction(self):
        right = calculate_bend_angle((0.7, 0.4), (0.5, 0.6))
        left = calculate_bend_angle((0.3, 0.4), (0.5, 0.6))
        self.assertAlmostEqual(abs(right), 45.0)
        self.assertAlmostEqual(right, -left)


class SmoothingTest(unittest.TestCase):
    def test_first_sample_passes_through(self):
        self.assertEqual(smooth_value(None, 120.0), 120.0)

    def test_exponential_step(self):
        self.assertAlmostEqual(smooth_value(100.0, 200.0, alpha=0.3), 130.0)

    def test_converges_to_constant_input(self):
        value = 160.0
        for _ in range(60):
            value = smooth_value(value, 90.0)
        self.assertAlmostEqual(value, 90.0, places=4)


class LandmarkLookupTest(unittest.TestCase):
    def test_low_visibility_is_missing(self):
        skeleton = [Landmark(x=0.5, y=0.5, visibility=1.0) for _ in BodyPart]
        skeleton[BodyPart.LEFT_KNEE] = Landmark(x=0.5, y=0.5, visibility=0.3)
        self.assertIsNone(get_landmark(skeleton, BodyPart.LEFT_KNEE))
        self.assertIsNotNone(get_landmark(skeleton, BodyPart.RIGHT_KNEE))

    def test_missing_entries_and_short_skeletons(self):
        skeleton = [Landmark(x=0.5, y=0.5)] * 12
        self.assertIsNone(get_landmark(skeleton, BodyPart.LEFT_HIP))
        self.assertIsNone(get_landmark(None, BodyPart.NOSE))
        skeleton[0] = None
        self.assertIsNone(get_landmark(skeleton, BodyPart.NOSE))

    def test_require_landmarks_is_all_or_nothing(self):
        skeleton = [Landmark(x=0.1 * i, y=0.0) for i in range(len(BodyPart))]
        points = require_landmarks(skeleton, (BodyPart.LEFT_HIP, BodyPart.LEFT_KNEE))
        self.assertEqual([p.x for p in points], [skeleton[23].x, skeleton[25].x])
        skeleton[25] = Landmark(x=0.0, y=0.0, visibility=0.1)
        self.assertIsNone(require_landmarks(skeleton, (BodyPart.LEFT_HIP, BodyPart.LEFT_KNEE)))


if __name__ == "__main__":
    unittest.main()
