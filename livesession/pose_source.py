# livesession/pose_source.py

import logging
import time

import cv2
import mediapipe as mp
from PySide6.QtCore import QObject, QTimer, Signal

from fitcore.landmarks import from_mediapipe

logger = logging.getLogger(__name__)


class MediaPipePoseSource:
    """Runs MediaPipe Pose on RGB frames and returns a Skeleton or None."""

    def __init__(self, min_detection_confidence=0.5, min_tracking_confidence=0.5, model_complexity=1):
        self._pose = mp.solutions.pose.Pose(
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
            model_complexity=model_complexity,
        )

    def process(self, frame_rgb):
        results = self._pose.process(frame_rgb)
        if not results.pose_landmarks:
            return None
        return from_mediapipe(results.pose_landmarks.landmark)

    def close(self):
        if self._pose is not None:
            self._pose.close()
            self._pose = None


class CameraLoop(QObject):
    """
    Timer-driven capture on the owning thread. Each tick reads one frame,
    runs pose estimation (and optional object detection) and emits it.
    """

    frame_ready = Signal(object, float, object)
    status_changed = Signal(str)

    def __init__(
        self,
        camera_index=0,
        pose_source=None,
        object_detector=None,
        fps=30,
        width=640,
        height=480,
        parent=None,
    ):
        super().__init__(parent)
        self.camera_index = camera_index
        self.pose_source = pose_source
        self.object_detector = object_detector
        self.width = width
        self.height = height
        self._cap = None
        self._timer = QTimer(self)
        self._timer.setInterval(max(1, int(1000 / max(1, fps))))
        self._timer.timeout.connect(self._tick)

    def start(self):
        if self._cap is not None:
            return
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            logger.error("Could not open camera %s.", self.camera_index)
            self.status_changed.emit(f"Error: Could not open camera {self.camera_index}.")
            return
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._cap = cap
        if self.pose_source is None:
            self.pose_source = MediaPipePoseSource()
        logger.info("Camera %s initialized.", self.camera_index)
        self._timer.start()

    def _tick(self):
        if self._cap is None:
            return
        ret, frame = self._cap.read()
        if not ret:
            logger.warning("Failed to capture frame from camera %s.", self.camera_index)
            return
        timestamp = time.monotonic()
        frame_rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        skeleton = self.pose_source.process(frame_rgb)
        objects = []
        if self.object_detector is not None:
            try:
                objects = self.object_detector.detect(frame)
            except Exception as exc:
                logger.warning("Object detection failed: %s", exc)
        self.frame_ready.emit(skeleton, timestamp, objects)

    def stop(self):
        self._timer.stop()
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        if self.pose_source is not None:
            self.pose_source.close()
        logger.info("Camera %s released.", self.camera_index)
