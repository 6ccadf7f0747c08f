# fitcore/landmarks.py

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .config import MIN_VISIBILITY


class BodyPart(IntEnum):
    """Canonical 33-point body numbering shared with MediaPipe Pose."""

    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: Optional[float] = None
    visibility: float = 1.0


def get_landmark(skeleton, part, min_visibility=MIN_VISIBILITY):
    """Return the landmark for ``part`` or None when absent or not confident."""
    if skeleton is None:
        return None
    index = int(part)
    if index >= len(skeleton):
        return None
    point = skeleton[index]
    if point is None:
        return None
    visibility = getattr(point, "visibility", 1.0)
    if visibility is None:
        visibility = 1.0
    if float(visibility) < min_visibility:
        return None
    return point


def require_landmarks(skeleton, parts, min_visibility=MIN_VISIBILITY):
    """Return landmarks for every part in order, or None if any one is unusable."""
    points = []
    for part in parts:
        point = get_landmark(skeleton, part, min_visibility)
        if point is None:
            return None
        points.append(point)
    return points


def from_mediapipe(landmark_list):
    """Convert a MediaPipe ``NormalizedLandmarkList.landmark`` sequence."""
    return [
        Landmark(
            x=float(point.x),
            y=float(point.y),
            z=float(getattr(point, "z", 0.0)),
            visibility=float(getattr(point, "visibility", 1.0)),
        )
        for point in landmark_list
    ]
