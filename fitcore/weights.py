# fitcore/weights.py

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .config import WEIGHT_OBJECT_LABELS, WEIGHT_PROXIMITY_RATIO


@dataclass(frozen=True)
class DetectedObject:
    # (x, y, width, height) in pixels, top-left origin.
    bbox: Tuple[float, float, float, float]
    label: str
    score: float = 1.0

    @property
    def center(self):
        x, y, w, h = self.bbox
        return x + w / 2.0, y + h / 2.0


@dataclass(frozen=True)
class WeightResult:
    is_weighted: bool
    object_label: Optional[str] = None


def detect_weight(
    objects,
    left_wrist,
    right_wrist,
    frame_width,
    frame_height,
    labels=WEIGHT_OBJECT_LABELS,
    proximity_ratio=WEIGHT_PROXIMITY_RATIO,
):
    """
    Flag a weighted rep when an object's box centre lies near either wrist.
    Wrists are normalized landmarks; object boxes are in pixels.
    """
    wrists = [w for w in (left_wrist, right_wrist) if w is not None]
    if labels:
        allowed = {label.lower() for label in labels}
        objects = [obj for obj in objects or () if obj.label.lower() in allowed]
    if not objects or not wrists:
        return WeightResult(is_weighted=False)

    threshold = frame_width * proximity_ratio
    for obj in objects:
        cx, cy = obj.center
        for wrist in wrists:
            wx = float(wrist.x) * frame_width
            wy = float(wrist.y) * frame_height
            if math.hypot(cx - wx, cy - wy) < threshold:
                return WeightResult(is_weighted=True, object_label=obj.label)
    return WeightResult(is_weighted=False)
