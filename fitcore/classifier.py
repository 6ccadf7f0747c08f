# fitcore/classifier.py

import logging
from collections import Counter, deque

from .config import CLASSIFIER_BUFFER_SIZE, CLASSIFIER_STABILITY_RATIO, classifier_config
from .landmarks import BodyPart, get_landmark, require_landmarks
from .utils import calculate_bend_angle, calculate_joint_angle

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


def _side_angles(skeleton, *triples):
    angles = []
    for triple in triples:
        points = require_landmarks(skeleton, triple)
        if points is not None:
            angles.append(calculate_joint_angle(*points))
    return angles


def _mid(skeleton, left, right):
    points = [p for p in (get_landmark(skeleton, left), get_landmark(skeleton, right)) if p is not None]
    if not points:
        return None
    return (
        sum(float(p.x) for p in points) / len(points),
        sum(float(p.y) for p in points) / len(points),
    )


def _mean(values):
    return sum(values) / len(values) if values else None


def extract_pose_features(skeleton):
    """
    Single-frame posture features used by the rule table.
    Returns None when the torso or legs are not tracked.
    """
    cfg = classifier_config
    shoulder = _mid(skeleton, BodyPart.LEFT_SHOULDER, BodyPart.RIGHT_SHOULDER)
    hip = _mid(skeleton, BodyPart.LEFT_HIP, BodyPart.RIGHT_HIP)
    ankle = _mid(skeleton, BodyPart.LEFT_ANKLE, BodyPart.RIGHT_ANKLE)
    knee_angles = _side_angles(
        skeleton,
        (BodyPart.LEFT_HIP, BodyPart.LEFT_KNEE, BodyPart.LEFT_ANKLE),
        (BodyPart.RIGHT_HIP, BodyPart.RIGHT_KNEE, BodyPart.RIGHT_ANKLE),
    )
    if shoulder is None or hip is None or ankle is None or not knee_angles:
        return None

    elbow_angles = _side_angles(
        skeleton,
        (BodyPart.LEFT_SHOULDER, BodyPart.LEFT_ELBOW, BodyPart.LEFT_WRIST),
        (BodyPart.RIGHT_SHOULDER, BodyPart.RIGHT_ELBOW, BodyPart.RIGHT_WRIST),
    )
    underarm_angles = _side_angles(
        skeleton,
        (BodyPart.LEFT_HIP, BodyPart.LEFT_SHOULDER, BodyPart.LEFT_ELBOW),
        (BodyPart.RIGHT_HIP, BodyPart.RIGHT_SHOULDER, BodyPart.RIGHT_ELBOW),
    )
    hip_angles = _side_angles(
        skeleton,
        (BodyPart.LEFT_SHOULDER, BodyPart.LEFT_HIP, BodyPart.LEFT_KNEE),
        (BodyPart.RIGHT_SHOULDER, BodyPart.RIGHT_HIP, BodyPart.RIGHT_KNEE),
    )

    ankles = require_landmarks(skeleton, (BodyPart.LEFT_ANKLE, BodyPart.RIGHT_ANKLE))
    ankle_spread = abs(ankles[0].x - ankles[1].x) if ankles else 0.0

    wrists = require_landmarks(skeleton, (BodyPart.LEFT_WRIST, BodyPart.RIGHT_WRIST))
    wrists_overhead = bool(wrists) and all(w.y < shoulder[1] for w in wrists)

    horizontal = abs(shoulder[1] - ankle[1]) < cfg["horizontal_span"]
    standing = (
        not horizontal
        and hip[1] > shoulder[1]
        and hip[1] < ankle[1] - cfg["standing_hip_clearance"]
    )

    return {
        "knee_angle": _mean(knee_angles),
        "min_knee_angle": min(knee_angles),
        "knee_asymmetry": abs(knee_angles[0] - knee_angles[1]) if len(knee_angles) == 2 else 0.0,
        "elbow_angle": _mean(elbow_angles),
        "underarm_angle": _mean(underarm_angles),
        "hip_angle": _mean(hip_angles),
        "torso_angle": abs(calculate_bend_angle(shoulder, hip)),
        "ankle_spread": ankle_spread,
        "wrists_overhead": wrists_overhead,
        "horizontal": horizontal,
        "standing": standing,
    }


def _below(value, limit):
    return value is not None and value < limit


# Ordered, first match wins.
CLASSIFIER_RULES = (
    ("push_up", lambda f, c: f["horizontal"] and _below(f["elbow_angle"], c["push_up_max_elbow"])),
    ("plank", lambda f, c: f["horizontal"] and f["min_knee_angle"] >= c["plank_min_knee"]),
    (
        "mountain_climber",
        lambda f, c: f["horizontal"] and f["min_knee_angle"] < c["mountain_climber_max_knee"],
    ),
    (
        "squat",
        lambda f, c: f["standing"]
        and f["torso_angle"] < c["upright_max_torso_lean"]
        and f["knee_angle"] < c["squat_max_knee"]
        and f["knee_asymmetry"] < c["squat_max_knee_asymmetry"]
        and f["ankle_spread"] < c["squat_max_ankle_spread"],
    ),
    (
        "lunge",
        lambda f, c: f["standing"]
        and f["torso_angle"] < c["upright_max_torso_lean"]
        and f["min_knee_angle"] < c["lunge_max_knee"],
    ),
    (
        "jumping_jack",
        lambda f, c: f["standing"]
        and f["wrists_overhead"]
        and f["knee_angle"] >= c["jumping_jack_min_knee"],
    ),
    (
        "bicep_curl",
        lambda f, c: f["standing"]
        and _below(f["elbow_angle"], c["bicep_curl_max_elbow"])
        and _below(f["underarm_angle"], c["bicep_curl_max_underarm"]),
    ),
    (
        "sit_up",
        lambda f, c: not f["standing"]
        and not f["horizontal"]
        and f["knee_angle"] < c["sit_up_max_knee"]
        and _below(f["hip_angle"], c["sit_up_max_hip"]),
    ),
)


def classify_exercise(skeleton):
    """Guess the exercise shown in a single frame. Advisory only."""
    features = extract_pose_features(skeleton)
    if features is None:
        return UNKNOWN
    for label, rule in CLASSIFIER_RULES:
        if rule(features, classifier_config):
            return label
    return UNKNOWN


class ClassifierStabilizer:
    """Majority vote over the most recent classifier outputs."""

    def __init__(self, size=CLASSIFIER_BUFFER_SIZE, ratio=CLASSIFIER_STABILITY_RATIO):
        self.size = int(size)
        self.ratio = float(ratio)
        self._buffer = deque(maxlen=self.size)

    def clear(self):
        self._buffer.clear()

    def push(self, label):
        """Add a label; return the stable majority label or None."""
        if label and label != UNKNOWN:
            self._buffer.append(label)
        if len(self._buffer) < self.size:
            return None
        majority, count = Counter(self._buffer).most_common(1)[0]
        if count / self.size > self.ratio:
            return majority
        return None
