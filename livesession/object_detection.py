# livesession/object_detection.py

import logging
import os

from fitcore.config import YOLO_CONFIG_DIR
from fitcore.weights import DetectedObject

os.environ.setdefault("YOLO_CONFIG_DIR", YOLO_CONFIG_DIR)

from ultralytics import YOLO  # noqa: E402

logger = logging.getLogger(__name__)


class YoloObjectDetector:
    """Bounding boxes of held objects for weighted-rep association."""

    def __init__(self, model_path="yolo11n.pt", confidence=0.4):
        self.confidence = confidence
        self.model = YOLO(str(model_path))
        logger.info("Object detector loaded: %s", model_path)

    def detect(self, frame_bgr):
        results = self.model.predict(frame_bgr, conf=self.confidence, verbose=False)
        if not results:
            return []
        result = results[0]
        boxes = result.boxes
        if boxes is None:
            return []
        detected = []
        for xyxy, cls, conf in zip(boxes.xyxy.tolist(), boxes.cls.tolist(), boxes.conf.tolist()):
            x1, y1, x2, y2 = xyxy
            detected.append(
                DetectedObject(
                    bbox=(x1, y1, x2 - x1, y2 - y1),
                    label=str(result.names[int(cls)]),
                    score=float(conf),
                )
            )
        return detected
