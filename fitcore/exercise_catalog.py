# fitcore/exercise_catalog.py

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Tuple

from .landmarks import BodyPart, get_landmark, require_landmarks
from .utils import calculate_distance, calculate_joint_angle

logger = logging.getLogger(__name__)


class UnknownExerciseError(ValueError):
    """Raised when an exercise id is not present in the catalog."""

    def __init__(self, exercise_id):
        self.exercise_id = exercise_id
        known = ", ".join(sorted(EXERCISE_CATALOG))
        super().__init__(f"Unknown exercise '{exercise_id}'. Known exercises: {known}")


class ThresholdMode(str, Enum):
    ANGLE_MIN = "angle_min"
    ANGLE_MAX = "angle_max"
    DISTANCE_MIN = "distance_min"
    DISTANCE_MAX = "distance_max"

    @property
    def is_min(self):
        return self in (ThresholdMode.ANGLE_MIN, ThresholdMode.DISTANCE_MIN)


@dataclass(frozen=True)
class Thresholds:
    start: float
    end: float
    mode: ThresholdMode


@dataclass(frozen=True)
class MetricResult:
    value: float
    target: float
    focus_point: Optional[Tuple[float, float]] = None


@dataclass(frozen=True)
class ExerciseDefinition:
    id: str
    display_name: str
    metric_fn: Callable
    thresholds: Thresholds
    instructions: str
    form_check: Optional[Callable] = None
    leg_exercise: bool = False
    progress_cue: str = "Lower..."
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    def compute_metric(self, skeleton):
        return self.metric_fn(skeleton, self.thresholds.end)

    def check_form(self, skeleton):
        if self.form_check is None:
            return None
        return self.form_check(skeleton)


def angle_metric(triples, reduce="mean", min_angles=None):
    """
    Build a metric function from joint-angle triples (A, vertex B, C).

    Triples with a missing or low-confidence landmark are dropped; the frame is
    skipped (None) when fewer than ``min_angles`` remain.
    """
    required = len(triples) if min_angles is None else min_angles

    def metric(skeleton, target):
        angles = []
        focus = None
        for triple in triples:
            points = require_landmarks(skeleton, triple)
            if points is None:
                continue
            angles.append(calculate_joint_angle(*points))
            if focus is None:
                focus = (float(points[1].x), float(points[1].y))
        if not angles or len(angles) < required:
            return None
        if reduce == "min":
            value = min(angles)
        elif reduce == "max":
            value = max(angles)
        else:
            value = sum(angles) / len(angles)
        return MetricResult(value=value, target=target, focus_point=focus)

    return metric


def wrist_raise_metric(skeleton, target):
    """
    Sum of vertical shoulder-to-wrist offsets, in hundredths of frame height.
    Positive when the wrists are above the shoulders.
    """
    points = require_landmarks(
        skeleton,
        (
            BodyPart.LEFT_SHOULDER,
            BodyPart.LEFT_WRIST,
            BodyPart.RIGHT_SHOULDER,
            BodyPart.RIGHT_WRIST,
        ),
    )
    if points is None:
        return None
    left_shoulder, left_wrist, right_shoulder, right_wrist = points
    offset = (left_shoulder.y - left_wrist.y) + (right_shoulder.y - right_wrist.y)
    focus = (
        (float(left_wrist.x) + float(right_wrist.x)) / 2.0,
        (float(left_wrist.y) + float(right_wrist.y)) / 2.0,
    )
    return MetricResult(value=float(offset) * 100.0, target=target, focus_point=focus)


def squat_form_check(skeleton):
    points = require_landmarks(
        skeleton,
        (BodyPart.LEFT_HIP, BodyPart.RIGHT_HIP, BodyPart.LEFT_KNEE, BodyPart.RIGHT_KNEE),
    )
    if points is None:
        return None
    left_hip, right_hip, left_knee, right_knee = points
    hip_width = abs(left_hip.x - right_hip.x)
    knee_width = abs(left_knee.x - right_knee.x)
    if knee_width < hip_width * 0.8:
        return "Keep your knees out!"
    return None


def push_up_form_check(skeleton):
    points = require_landmarks(
        skeleton, (BodyPart.LEFT_SHOULDER, BodyPart.LEFT_HIP, BodyPart.LEFT_ANKLE)
    )
    if points is None:
        points = require_landmarks(
            skeleton, (BodyPart.RIGHT_SHOULDER, BodyPart.RIGHT_HIP, BodyPart.RIGHT_ANKLE)
        )
    if points is None:
        return None
    if calculate_joint_angle(*points) < 160:
        return "Keep your back straight!"
    return None


LEFT_KNEE = (BodyPart.LEFT_HIP, BodyPart.LEFT_KNEE, BodyPart.LEFT_ANKLE)
RIGHT_KNEE = (BodyPart.RIGHT_HIP, BodyPart.RIGHT_KNEE, BodyPart.RIGHT_ANKLE)
LEFT_ELBOW = (BodyPart.LEFT_SHOULDER, BodyPart.LEFT_ELBOW, BodyPart.LEFT_WRIST)
RIGHT_ELBOW = (BodyPart.RIGHT_SHOULDER, BodyPart.RIGHT_ELBOW, BodyPart.RIGHT_WRIST)
LEFT_HIP = (BodyPart.LEFT_SHOULDER, BodyPart.LEFT_HIP, BodyPart.LEFT_KNEE)
RIGHT_HIP = (BodyPart.RIGHT_SHOULDER, BodyPart.RIGHT_HIP, BodyPart.RIGHT_KNEE)


EXERCISE_CATALOG = {}


def register_exercise(definition):
    if definition.id in EXERCISE_CATALOG:
        logger.warning("Replacing catalog entry for exercise '%s'.", definition.id)
    EXERCISE_CATALOG[definition.id] = definition
    return definition


register_exercise(
    ExerciseDefinition(
        id="squat",
        display_name="Squats",
        metric_fn=angle_metric((LEFT_KNEE, RIGHT_KNEE), reduce="mean"),
        thresholds=Thresholds(start=160, end=90, mode=ThresholdMode.ANGLE_MIN),
        instructions="Stand with feet shoulder-width apart. Lower your hips back and down.",
        form_check=squat_form_check,
        leg_exercise=True,
        aliases=("squats",),
    )
)
register_exercise(
    ExerciseDefinition(
        id="push_up",
        display_name="Pushups",
        metric_fn=angle_metric((LEFT_ELBOW, RIGHT_ELBOW), reduce="mean", min_angles=1),
        thresholds=Thresholds(start=160, end=90, mode=ThresholdMode.ANGLE_MIN),
        instructions="Start in a plank position. Lower your chest to the floor.",
        form_check=push_up_form_check,
        aliases=("pushups", "push-ups", "push ups"),
    )
)
register_exercise(
    ExerciseDefinition(
        id="lunge",
        display_name="Lunges",
        metric_fn=angle_metric((LEFT_KNEE, RIGHT_KNEE), reduce="min"),
        thresholds=Thresholds(start=160, end=100, mode=ThresholdMode.ANGLE_MIN),
        instructions="Step forward and lower until both knees are bent near 90 degrees.",
        leg_exercise=True,
        aliases=("lunges",),
    )
)
register_exercise(
    ExerciseDefinition(
        id="jumping_jack",
        display_name="Jumping Jacks",
        metric_fn=wrist_raise_metric,
        thresholds=Thresholds(start=-40, end=20, mode=ThresholdMode.DISTANCE_MAX),
        instructions="Jump your feet wide while sweeping both arms overhead.",
        leg_exercise=True,
        progress_cue="Higher...",
        aliases=("jumping jacks", "jumping_jacks"),
    )
)
register_exercise(
    ExerciseDefinition(
        id="crunch",
        display_name="Crunches",
        metric_fn=angle_metric((LEFT_HIP, RIGHT_HIP), reduce="mean", min_angles=1),
        thresholds=Thresholds(start=130, end=100, mode=ThresholdMode.ANGLE_MIN),
        instructions="Lie on your back with knees bent. Curl your shoulders toward your hips.",
        progress_cue="Curl up...",
        aliases=("crunches", "sit_up", "sit-ups", "situps"),
    )
)
register_exercise(
    ExerciseDefinition(
        id="bicep_curl",
        display_name="Bicep Curls",
        metric_fn=angle_metric((LEFT_ELBOW, RIGHT_ELBOW), reduce="mean", min_angles=1),
        thresholds=Thresholds(start=160, end=45, mode=ThresholdMode.ANGLE_MIN),
        instructions="Hold weights with palms facing forward. Curl towards shoulders.",
        progress_cue="Curl higher...",
        aliases=("bicep curls", "bicep_curls", "curls"),
    )
)


def get_exercise(exercise_id):
    try:
        return EXERCISE_CATALOG[exercise_id]
    except KeyError:
        raise UnknownExerciseError(exercise_id) from None


def find_exercise(name):
    """Resolve an id, display name or alias, case-insensitively."""
    if not name:
        return None
    if name in EXERCISE_CATALOG:
        return EXERCISE_CATALOG[name]
    key = " ".join(str(name).strip().lower().split())
    for definition in EXERCISE_CATALOG.values():
        candidates = {definition.id, definition.display_name.lower(), *definition.aliases}
        if key in candidates or key.replace(" ", "_") in candidates:
            return definition
    return None


def feet_visible(skeleton):
    return (
        get_landmark(skeleton, BodyPart.LEFT_ANKLE) is not None
        or get_landmark(skeleton, BodyPart.RIGHT_ANKLE) is not None
    )


def shoulder_width(skeleton):
    points = require_landmarks(skeleton, (BodyPart.LEFT_SHOULDER, BodyPart.RIGHT_SHOULDER))
    if points is None:
        return None
    return calculate_distance(*points)
