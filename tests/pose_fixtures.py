import math
from types import SimpleNamespace

from fitcore.landmarks import BodyPart


def make_landmarks(visibility=1.0):
    return [SimpleNamespace(x=0.5, y=0.5, z=0.0, visibility=visibility) for _ in range(len(BodyPart))]


def set_point(landmarks, part, x, y, visibility=1.0, z=0.0):
    landmarks[part.value] = SimpleNamespace(x=x, y=y, z=z, visibility=visibility)


def squat_pose(knee_angle, knee_visibility=1.0, ankle_visibility=1.0):
    """Standing figure whose knees bend to ``knee_angle`` degrees."""
    landmarks = make_landmarks()
    theta = math.radians(knee_angle)
    for side, hip_x in (("LEFT", 0.42), ("RIGHT", 0.58)):
        hip = BodyPart[f"{side}_HIP"]
        knee = BodyPart[f"{side}_KNEE"]
        ankle = BodyPart[f"{side}_ANKLE"]
        set_point(landmarks, hip, hip_x, 0.5)
        set_point(landmarks, knee, hip_x, 0.7, visibility=knee_visibility)
        set_point(
            landmarks,
            ankle,
            hip_x + 0.2 * math.sin(theta),
            0.7 - 0.2 * math.cos(theta),
            visibility=ankle_visibility,
        )
    set_point(landmarks, BodyPart.LEFT_SHOULDER, 0.40, 0.25)
    set_point(landmarks, BodyPart.RIGHT_SHOULDER, 0.60, 0.25)
    return landmarks
