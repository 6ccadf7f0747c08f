# fitcore/utils.py

import numpy as np

from .config import SMOOTHING_ALPHA


def _xy(point):
    if hasattr(point, "x") and hasattr(point, "y"):
        return np.array([float(point.x), float(point.y)])
    return np.array([float(point[0]), float(point[1])])


def calculate_joint_angle(a, b, c):
    """
    Calculate the unsigned angle at vertex b, in degrees within [0, 180].
    a, b, c: landmarks (anything with .x/.y) or [x, y] pairs.
    """
    a = _xy(a)
    b = _xy(b)
    c = _xy(c)
    radians = np.arctan2(c[1] - b[1], c[0] - b[0]) - np.arctan2(a[1] - b[1], a[0] - b[0])
    angle = float(np.abs(radians * 180.0 / np.pi))
    if angle > 180.0:
        angle = 360.0 - angle
    return angle


def calculate_distance(a, b):
    """Planar Euclidean distance in normalized frame units."""
    return float(np.linalg.norm(_xy(a) - _xy(b)))


def calculate_bend_angle(a, b):
    """
    Calculate the angle between the vector from b to a and the vertical axis.
    Positive angle indicates back bend, negative indicates front bend.
    """
    vector = _xy(a) - _xy(b)
    norm = np.linalg.norm(vector)
    if norm == 0:
        return 0.0
    vector_norm = vector / norm
    vertical = np.array([0.0, -1.0])  # y-axis points down

    dot_prod = np.dot(vector_norm, vertical)
    angle = float(np.degrees(np.arccos(np.clip(dot_prod, -1.0, 1.0))))

    cross_prod = vertical[0] * vector_norm[1] - vertical[1] * vector_norm[0]
    if cross_prod > 0:
        angle = -angle
    return angle


def midpoint(a, b):
    mid = (_xy(a) + _xy(b)) / 2.0
    return float(mid[0]), float(mid[1])


def smooth_value(previous, raw, alpha=SMOOTHING_ALPHA):
    """Single-pole exponential low-pass filter step."""
    if previous is None:
        return float(raw)
    return float(previous) * (1.0 - alpha) + float(raw) * alpha


def clamp01(value):
    return max(0.0, min(1.0, float(value)))
