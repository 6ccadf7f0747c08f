# fitcore/velocity.py

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .config import (
    AVERAGE_SHOULDER_WIDTH_M,
    DEFAULT_PIXELS_TO_METERS,
    EXPLOSIVE_VELOCITY,
    GRAVITY,
    MIN_CALIBRATION_SHOULDER_WIDTH,
    SMOOTHING_ALPHA,
    STALE_DT_SEC,
)
from .exercise_catalog import shoulder_width
from .utils import smooth_value

logger = logging.getLogger(__name__)


@dataclass
class VelocityState:
    last_position: Optional[Tuple[float, float]] = None
    last_timestamp: float = 0.0
    smoothed_velocity: float = 0.0


@dataclass(frozen=True)
class VelocityUpdate:
    velocity: float
    is_explosive: bool
    vector: Tuple[float, float]

    def as_dict(self):
        return {
            "velocity": self.velocity,
            "is_explosive": self.is_explosive,
            "vector": list(self.vector),
        }


ZERO_UPDATE = VelocityUpdate(velocity=0.0, is_explosive=False, vector=(0.0, 0.0))


class VelocityTracker:
    """Frame-to-frame speed of one tracked point, in meters per second."""

    def __init__(self, pixels_to_meters=None, alpha=SMOOTHING_ALPHA):
        self.pixels_to_meters = float(pixels_to_meters or DEFAULT_PIXELS_TO_METERS)
        self.alpha = alpha
        self.state = VelocityState()

    def set_scale(self, pixels_to_meters):
        if pixels_to_meters is None or pixels_to_meters <= 0:
            logger.warning("Ignoring invalid pixels-to-meters scale: %s", pixels_to_meters)
            return
        self.pixels_to_meters = float(pixels_to_meters)

    def reset(self):
        self.state = VelocityState()

    def _restart(self, position, timestamp):
        self.state = VelocityState(last_position=position, last_timestamp=timestamp)
        return ZERO_UPDATE

    def update(self, position, timestamp):
        """
        position: (x, y) in pixels; timestamp: seconds.
        The returned vector is the raw displacement rate in pixels per second.
        """
        position = (float(position[0]), float(position[1]))
        if self.state.last_position is None:
            return self._restart(position, timestamp)

        dt = timestamp - self.state.last_timestamp
        if dt <= 0 or dt > STALE_DT_SEC:
            logger.debug("Velocity tracking restarted (dt=%.3fs)", dt)
            return self._restart(position, timestamp)

        dx = position[0] - self.state.last_position[0]
        dy = position[1] - self.state.last_position[1]
        raw_velocity = math.hypot(dx, dy) * self.pixels_to_meters / dt
        smoothed = smooth_value(self.state.smoothed_velocity, raw_velocity, self.alpha)

        self.state.last_position = position
        self.state.last_timestamp = timestamp
        self.state.smoothed_velocity = smoothed

        return VelocityUpdate(
            velocity=smoothed,
            is_explosive=smoothed > EXPLOSIVE_VELOCITY,
            vector=(dx / dt, dy / dt),
        )


def estimate_power(mass_kg, velocity):
    """Mechanical power in watts for an externally supplied mass."""
    if not mass_kg or mass_kg <= 0:
        return 0.0
    return float(mass_kg) * GRAVITY * float(velocity)


def calibrate_scale_from_shoulders(skeleton, frame_width_px):
    """
    Derive meters-per-pixel from an average shoulder width.
    Returns None when the shoulders are not clearly in frame.
    """
    width = shoulder_width(skeleton)
    if width is None or width <= MIN_CALIBRATION_SHOULDER_WIDTH or frame_width_px <= 0:
        return None
    return AVERAGE_SHOULDER_WIDTH_M / (width * frame_width_px)
