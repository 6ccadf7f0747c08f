# fitcore/config.py

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env_float(name, default):
    raw = os.environ.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_labels(name):
    raw = os.environ.get(name, "")
    labels = [item.strip().lower() for item in raw.split(",") if item.strip()]
    return tuple(labels) or None


# Landmark confidence floor below which a joint is treated as missing.
MIN_VISIBILITY = 0.5

# Metric and velocity low-pass filter weight for the newest sample.
SMOOTHING_ALPHA = 0.3

# Rep counting guards. The buffer is in metric units (degrees or normalized
# distance scaled by the exercise definition).
HYSTERESIS_BUFFER = 10.0
REP_DEBOUNCE_SEC = 0.5
PROGRESS_CUE_PERCENT = 50.0
SENSITIVITY_RANGE = (-20.0, 20.0)

FORM_FEEDBACK_INTERVAL_SEC = 5.0

# Velocity tracker.
STALE_DT_SEC = 1.0
EXPLOSIVE_VELOCITY = 1.0
DEFAULT_PIXELS_TO_METERS = _env_float("FITCOACH_PIXELS_TO_METERS", 0.0025)
AVERAGE_SHOULDER_WIDTH_M = 0.4
MIN_CALIBRATION_SHOULDER_WIDTH = 0.1
GRAVITY = 9.81

# Coach context thresholds for rep cues.
HYPE_VELOCITY = 1.2
HYPE_POWER_WATTS = 300.0

# Weighted-object association.
WEIGHT_PROXIMITY_RATIO = 0.15
DEFAULT_WEIGHT_LABELS = ("bottle", "cup", "sports ball", "dumbbell", "cell phone")
WEIGHT_OBJECT_LABELS = _env_labels("FITCOACH_WEIGHT_LABELS") or DEFAULT_WEIGHT_LABELS

# Auto-detect stabilizer.
CLASSIFIER_BUFFER_SIZE = 15
CLASSIFIER_STABILITY_RATIO = 0.8

# Audio wire formats.
CAPTURE_SAMPLE_RATE = 16000
CAPTURE_BLOCK_SIZE = 4096
PLAYBACK_SAMPLE_RATE = 24000
CAPTURE_MIME_TYPE = f"audio/pcm;rate={CAPTURE_SAMPLE_RATE}"

# Rep and exercise-switch cue: a sine gliding down an octave while fading out.
CUE_DURATION_SEC = 0.5
CUE_START_HZ = 880.0
CUE_END_HZ = 440.0
CUE_START_GAIN = 0.3
CUE_END_GAIN = 0.01

# Coaching circuit breaker.
MAX_SESSION_SEC = 10 * 60
INACTIVITY_SEC = 2 * 60

AUDIO_DISABLED = os.environ.get("FITCOACH_DISABLE_AUDIO", "0") == "1"

LOG_LEVEL = os.environ.get("FITCOACH_LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("FITCOACH_LOG_FILE") or str(PROJECT_ROOT / "fitcoach.log")
# Ultralytics writes its settings file here instead of the user profile.
YOLO_CONFIG_DIR = str(PROJECT_ROOT / ".cache" / "ultralytics")

classifier_config = {
    # Shoulder-to-ankle vertical span below this means the body is horizontal.
    "horizontal_span": 0.25,
    # Hip must sit this far above the ankles for a standing posture.
    "standing_hip_clearance": 0.15,
    "push_up_max_elbow": 130,
    "plank_min_knee": 150,
    "mountain_climber_max_knee": 120,
    "squat_max_knee": 140,
    "squat_max_knee_asymmetry": 25,
    "squat_max_ankle_spread": 0.3,
    # Shoulder-over-hip lean from vertical, in degrees, beyond which the body is
    # bent over rather than squatting or lunging.
    "upright_max_torso_lean": 60,
    "lunge_max_knee": 140,
    "jumping_jack_min_knee": 150,
    "bicep_curl_max_elbow": 90,
    "bicep_curl_max_underarm": 40,
    "sit_up_max_knee": 120,
    "sit_up_max_hip": 110,
}


@dataclass
class SessionConfig:
    exercise_id: str = "squat"
    pixels_to_meters: Optional[float] = None
    detect_weights: bool = False
    auto_detect: bool = False
    auto_calibrate: bool = False
    sensitivity: float = 0.0
    frame_width: int = 640
    frame_height: int = 480
    # "object" tracks the first detected object centre, otherwise a body part name.
    velocity_point: str = "object"
    mass_kg: float = 0.0

    def resolved_pixels_to_meters(self):
        if self.pixels_to_meters and self.pixels_to_meters > 0:
            return float(self.pixels_to_meters)
        return DEFAULT_PIXELS_TO_METERS

    def clamped_sensitivity(self):
        low, high = SENSITIVITY_RANGE
        return max(low, min(high, float(self.sensitivity or 0.0)))
