# app.py

import argparse
import logging
import signal
import sys
import warnings

from PySide6.QtCore import QCoreApplication, QTimer

from fitcore.config import AUDIO_DISABLED, SessionConfig
from fitcore.exercise_catalog import EXERCISE_CATALOG, UnknownExerciseError, get_exercise
from fitcore.logging_config import configure_logging

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Count reps and coach form live from a camera and microphone."
    )
    parser.add_argument(
        "--exercise",
        default="squat",
        help=f"Exercise id. One of: {', '.join(sorted(EXERCISE_CATALOG))}",
    )
    parser.add_argument("--camera", type=int, default=0, help="OpenCV camera index.")
    parser.add_argument("--width", type=int, default=640)
    parser.add_argument("--height", type=int, default=480)
    parser.add_argument("--fps", type=int, default=30)
    parser.add_argument("--auto-detect", action="store_true", help="Let the classifier switch exercises.")
    parser.add_argument("--auto-calibrate", action="store_true", help="Derive velocity scale from shoulder width.")
    parser.add_argument("--pixels-to-meters", type=float, default=None)
    parser.add_argument("--sensitivity", type=float, default=0.0, help="Offset added to the rep depth threshold.")
    parser.add_argument("--mass-kg", type=float, default=0.0, help="Load mass for power estimates.")
    parser.add_argument(
        "--velocity-point",
        default="object",
        help="'object' for the first detected object, a body part name, or 'none'.",
    )
    parser.add_argument("--detect-weights", action="store_true", help="Run object detection for weighted reps.")
    parser.add_argument("--yolo-model", default="yolo11n.pt")
    parser.add_argument("--no-audio", action="store_true", help="Disable microphone and speaker.")
    parser.add_argument("--log-level", default=None)
    return parser


def _wire_logging(session):
    session.rep_completed.connect(
        lambda event: logger.info("Rep %s (%s)", event["count"], event["exercise_id"])
    )
    session.feedback_changed.connect(lambda text: logger.info("Feedback: %s", text))
    session.form_warning.connect(lambda text: logger.warning("Form: %s", text))
    session.exercise_changed.connect(lambda exercise_id: logger.info("Exercise: %s", exercise_id))
    session.suggestion_changed.connect(
        lambda payload: logger.debug("Classifier suggests: %s", payload["exercise_id"])
    )
    session.weight_changed.connect(lambda payload: logger.info("Weight: %s", payload))
    session.connection_changed.connect(lambda state: logger.info("Coach connection: %s", state))


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)
    warnings.filterwarnings(
        "ignore",
        message=r".*SymbolDatabase\.GetPrototype\(\) is deprecated.*",
        category=UserWarning,
    )

    # Reject a bad exercise id before opening the camera, model or audio devices.
    try:
        get_exercise(args.exercise)
    except UnknownExerciseError as exc:
        logger.error("%s", exc)
        return 2

    config = SessionConfig(
        exercise_id=args.exercise,
        pixels_to_meters=args.pixels_to_meters,
        detect_weights=args.detect_weights,
        auto_detect=args.auto_detect,
        auto_calibrate=args.auto_calibrate,
        sensitivity=args.sensitivity,
        frame_width=args.width,
        frame_height=args.height,
        velocity_point=args.velocity_point,
        mass_kg=args.mass_kg,
    )

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName("Live Workout Coach")

    from livesession.pose_source import CameraLoop
    from livesession.session import LiveSession

    detector = None
    if args.detect_weights:
        from livesession.object_detection import YoloObjectDetector

        detector = YoloObjectDetector(model_path=args.yolo_model)

    camera = CameraLoop(
        camera_index=args.camera,
        object_detector=detector,
        fps=args.fps,
        width=args.width,
        height=args.height,
    )

    microphone = None
    playback = None
    if not (args.no_audio or AUDIO_DISABLED):
        from livesession.audio_devices import MicrophoneCapture, SoundDevicePlaybackEngine

        microphone = MicrophoneCapture()
        playback = SoundDevicePlaybackEngine()

    session = LiveSession(
        config,
        playback_engine=playback,
        frame_source=camera,
        microphone=microphone,
    )

    _wire_logging(session)
    session.session_stopped.connect(app.quit)

    def _shutdown(*_):
        logger.info("Shutdown requested.")
        session.stop()

    signal.signal(signal.SIGINT, _shutdown)
    # Let the interpreter run signal handlers while Qt owns the loop.
    heartbeat = QTimer()
    heartbeat.timeout.connect(lambda: None)
    heartbeat.start(250)

    breaker = QTimer()
    breaker.timeout.connect(session.check_circuit_breaker)
    breaker.start(30_000)

    try:
        if playback is not None:
            playback.start()
        session.start()
        session.connect_coaching()
        return app.exec()
    finally:
        session.stop()
        if playback is not None:
            playback.close()
        record = session.complete_set()
        if record:
            logger.info("Unsaved set: %s", record)


if __name__ == "__main__":
    sys.exit(main())
