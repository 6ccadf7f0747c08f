# livesession/session.py

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from PySide6.QtCore import QObject, Signal

from fitcore.channel import ConnectionState
from fitcore.classifier import UNKNOWN, ClassifierStabilizer, classify_exercise
from fitcore.config import (
    HYPE_POWER_WATTS,
    HYPE_VELOCITY,
    INACTIVITY_SEC,
    MAX_SESSION_SEC,
)
from fitcore.exercise_catalog import find_exercise, get_exercise
from fitcore.landmarks import BodyPart, get_landmark
from fitcore.audio_codec import AudioCaptureEncoder
from fitcore.playback import AudioPlaybackScheduler
from fitcore.rep_counter import RepCounter
from fitcore.velocity import VelocityTracker, calibrate_scale_from_shoulders, estimate_power
from fitcore.weights import WeightResult, detect_weight

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only projection of session state for display."""

    exercise_id: str
    display_name: str
    rep_count: int
    machine_state: str
    feedback: str
    progress_percent: float
    last_rep_duration: Optional[float]
    average_rep_duration: Optional[float]
    connection_state: str
    suggestion: Optional[str]
    velocity: float
    is_explosive: bool
    is_weighted: bool
    weight_label: Optional[str]
    exercise_locked: bool


class LiveSession(QObject):
    """
    Owns all mutable state of one workout session.

    Frame and audio callbacks write straight into the counters, so the next
    callback always sees the current values. Signals only notify observers.
    """

    rep_completed = Signal(dict)
    suggestion_changed = Signal(dict)
    velocity_updated = Signal(dict)
    weight_changed = Signal(dict)
    feedback_changed = Signal(str)
    form_warning = Signal(str)
    exercise_changed = Signal(str)
    connection_changed = Signal(str)
    session_stopped = Signal()

    def __init__(
        self,
        config,
        channel=None,
        playback_engine=None,
        frame_source=None,
        microphone=None,
        clock=time.monotonic,
        parent=None,
    ):
        # Unknown exercises are rejected before any session state exists.
        definition = get_exercise(config.exercise_id)
        super().__init__(parent)
        self.config = config
        self.channel = channel
        self.frame_source = frame_source
        self.microphone = microphone
        self._clock = clock

        self.rep_counter = RepCounter(definition.id, sensitivity=config.clamped_sensitivity())
        self.velocity_tracker = VelocityTracker(config.resolved_pixels_to_meters())
        self.stabilizer = ClassifierStabilizer()
        self.encoder = AudioCaptureEncoder()
        self.scheduler = AudioPlaybackScheduler(playback_engine) if playback_engine else None

        self.connection_state = ConnectionState.DISCONNECTED
        self.exercise_locked = not config.auto_detect
        self.calibrated = False
        self.history = []
        self.last_percent = 0.0
        self.last_velocity = None
        self.last_power = 0.0
        self.last_suggestion = None
        self.weight_result = WeightResult(is_weighted=False)
        self.started_at = None
        self.connected_at = None
        self.last_activity_at = None
        self._last_feedback = self.rep_counter.state.last_feedback
        self._running = False
        self._stopped = False
        self._velocity_disabled = False

    # ------------------------------------------------------------------
    # lifecycle

    def start(self):
        if self._stopped:
            raise RuntimeError("A stopped session cannot be restarted.")
        if self._running:
            return
        self._running = True
        self.started_at = self._clock()
        if self.frame_source is not None:
            self.frame_source.frame_ready.connect(self.on_frame)
            self.frame_source.start()
        if self.microphone is not None:
            self.microphone.block_captured.connect(self.on_audio_block)
            self.microphone.start()
        logger.info(
            "Session started: exercise=%s auto_detect=%s weights=%s",
            self.rep_counter.exercise_id,
            self.config.auto_detect,
            self.config.detect_weights,
        )

    def stop(self):
        """Best-effort, idempotent teardown."""
        if self._stopped:
            return
        self._stopped = True
        was_running, self._running = self._running, False

        if self.frame_source is not None:
            if was_running:
                try:
                    self.frame_source.frame_ready.disconnect(self.on_frame)
                except (RuntimeError, TypeError) as exc:
                    logger.debug("Frame callback already disconnected: %s", exc)
            try:
                self.frame_source.stop()
            except Exception as exc:
                logger.warning("Error stopping frame source: %s", exc)

        if self.microphone is not None:
            if was_running:
                try:
                    self.microphone.block_captured.disconnect(self.on_audio_block)
                except (RuntimeError, TypeError) as exc:
                    logger.debug("Audio callback already disconnected: %s", exc)
            try:
                self.microphone.close()
            except Exception as exc:
                logger.warning("Error closing microphone: %s", exc)

        self.encoder.set_connected(False)
        self._stop_playback()

        if self.channel is not None:
            try:
                self.channel.close()
            except Exception as exc:
                logger.warning("Error closing coaching channel: %s", exc)
        self._set_connection_state(ConnectionState.DISCONNECTED)

        logger.info(
            "Session stopped: exercise=%s reps=%s",
            self.rep_counter.exercise_id,
            self.rep_counter.state.rep_count,
        )
        self.session_stopped.emit()

    @property
    def is_running(self):
        return self._running

    # ------------------------------------------------------------------
    # exercise selection

    def select_exercise(self, exercise_id, reset_count=False):
        """User-driven switch; locks out auto-detect from then on."""
        definition = get_exercise(exercise_id)
        self.exercise_locked = True
        self._switch_exercise(definition, reset_count)

    def _switch_exercise(self, definition, reset_count):
        if definition.id == self.rep_counter.exercise_id and not reset_count:
            return
        self.rep_counter.switch_exercise(definition.id, reset_count=reset_count)
        self.stabilizer.clear()
        self.exercise_changed.emit(definition.id)
        self._publish_feedback(self.rep_counter.state.last_feedback)

    # ------------------------------------------------------------------
    # video-frame callback

    def on_frame(self, skeleton, timestamp=None, objects=None):
        if self._stopped:
            return None
        ts = self._clock() if timestamp is None else float(timestamp)
        objects = list(objects or [])

        update = None
        if skeleton is not None:
            update = self.rep_counter.process_frame(skeleton, ts)
            if update is not None:
                self.last_percent = update.percent
                if update.form_warning:
                    self._handle_form_warning(update.form_warning)
                if update.rep_event is not None:
                    self._handle_rep(update.rep_event)
            self._publish_feedback(self.rep_counter.state.last_feedback)

            self._maybe_calibrate(skeleton)
            self._update_classifier(skeleton)
            if self.config.detect_weights:
                self._update_weight(skeleton, objects)

        self._update_velocity(skeleton, ts, objects)
        return update

    def _publish_feedback(self, feedback):
        if feedback != self._last_feedback:
            self._last_feedback = feedback
            self.feedback_changed.emit(feedback)

    def _handle_form_warning(self, warning):
        self.history.append(
            {"time": datetime.now().strftime("%H:%M:%S"), "type": "warning", "detail": warning}
        )
        self.form_warning.emit(warning)
        self._send_text(f"Form Warning: {warning}.")

    def _handle_rep(self, event):
        self.last_activity_at = self._clock()
        duration_text = f" ({event.duration:.1f}s)" if event.duration is not None else ""
        self.history.append(
            {
                "time": datetime.now().strftime("%H:%M:%S"),
                "type": "rep",
                "detail": f"Rep {event.count}{duration_text}",
            }
        )
        self.rep_completed.emit(
            {
                "exercise_id": event.exercise_id,
                "count": event.count,
                "timestamp": event.timestamp,
                "duration": event.duration,
            }
        )
        self._play_cue()
        self._send_text(self._rep_cue(event))

    def _rep_cue(self, event):
        definition = self.rep_counter.definition
        cue = f"User did rep {event.count} of {definition.display_name}."
        if self.last_power > HYPE_POWER_WATTS:
            cue += f" POWER: {self.last_power:.0f}W!"
        if self.last_velocity is not None and self.last_velocity.velocity > HYPE_VELOCITY:
            cue += f" VELOCITY: {self.last_velocity.velocity:.2f}m/s! EXPLOSIVE!"
        return cue

    def _maybe_calibrate(self, skeleton):
        if not self.config.auto_calibrate or self.calibrated:
            return
        scale = calibrate_scale_from_shoulders(skeleton, self.config.frame_width)
        if scale is not None:
            self.velocity_tracker.set_scale(scale)
            self.calibrated = True
            logger.info("Velocity scale calibrated from shoulder width: %.6f m/px", scale)

    def _update_classifier(self, skeleton):
        label = classify_exercise(skeleton)
        suggestion = None if label == UNKNOWN else label
        if suggestion != self.last_suggestion:
            self.last_suggestion = suggestion
            self.suggestion_changed.emit({"exercise_id": suggestion})

        stable = self.stabilizer.push(label)
        if stable is None or self.exercise_locked or not self.config.auto_detect:
            return
        definition = find_exercise(stable)
        if definition is None or definition.id == self.rep_counter.exercise_id:
            return
        logger.info("Auto-detect switched exercise to %s (stable)", definition.id)
        self._switch_exercise(definition, reset_count=False)
        self._play_cue()

    def _update_weight(self, skeleton, objects):
        result = detect_weight(
            objects,
            get_landmark(skeleton, BodyPart.LEFT_WRIST),
            get_landmark(skeleton, BodyPart.RIGHT_WRIST),
            self.config.frame_width,
            self.config.frame_height,
        )
        if result != self.weight_result:
            self.weight_result = result
            self.weight_changed.emit(
                {"is_weighted": result.is_weighted, "object_label": result.object_label}
            )

    def _tracked_position(self, skeleton, objects):
        point = (self.config.velocity_point or "object").strip().lower()
        if point == "object":
            if not objects:
                return None
            return objects[0].center
        try:
            part = BodyPart[point.upper()]
        except KeyError:
            logger.warning("Unknown velocity point '%s'; velocity disabled.", point)
            self._velocity_disabled = True
            return None
        landmark = get_landmark(skeleton, part)
        if landmark is None:
            return None
        return (
            float(landmark.x) * self.config.frame_width,
            float(landmark.y) * self.config.frame_height,
        )

    def _update_velocity(self, skeleton, timestamp, objects):
        if self._velocity_disabled or (self.config.velocity_point or "").lower() == "none":
            return
        position = self._tracked_position(skeleton, objects)
        if position is None:
            if self.velocity_tracker.state.last_position is not None:
                self.velocity_tracker.reset()
            self.last_velocity = None
            self.last_power = 0.0
            return

        update = self.velocity_tracker.update(position, timestamp)
        self.last_velocity = update
        self.last_power = estimate_power(self.config.mass_kg, update.velocity)
        payload = update.as_dict()
        payload["power"] = self.last_power
        self.velocity_updated.emit(payload)

    # ------------------------------------------------------------------
    # audio-block callback

    def on_audio_block(self, samples):
        if self._stopped:
            return
        payload = self.encoder.encode(samples)
        if payload is None or self.channel is None:
            return
        try:
            self.channel.send_realtime_input(payload)
        except Exception as exc:
            logger.error("Failed to send audio block: %s", exc)
            self._fail_connection()

    # ------------------------------------------------------------------
    # coaching channel

    def connect_coaching(self):
        if self.channel is None:
            logger.warning("No coaching channel configured; running offline.")
            return False
        if self.connection_state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return True
        self.channel.bind(
            on_open=self._on_channel_open,
            on_message=self._on_channel_message,
            on_close=self._on_channel_close,
            on_error=self._on_channel_error,
        )
        self._set_connection_state(ConnectionState.CONNECTING)
        try:
            self.channel.connect()
        except Exception as exc:
            logger.error("Failed to connect coaching channel: %s", exc)
            self._fail_connection()
            return False
        return True

    def disconnect_coaching(self):
        if self.channel is None:
            return
        self.encoder.set_connected(False)
        self._stop_playback()
        try:
            self.channel.close()
        except Exception as exc:
            logger.warning("Error closing coaching channel: %s", exc)
        self._set_connection_state(ConnectionState.DISCONNECTED)

    def _set_connection_state(self, state):
        if state == self.connection_state:
            return
        logger.info("Coaching connection: %s -> %s", self.connection_state.value, state.value)
        self.connection_state = state
        self.connection_changed.emit(state.value)

    def _stop_playback(self):
        if self.scheduler is None:
            return
        try:
            self.scheduler.stop_all()
        except Exception as exc:
            logger.warning("Error stopping playback: %s", exc)

    def _play_cue(self):
        if self.scheduler is None:
            return
        try:
            self.scheduler.play_cue()
        except Exception as exc:
            logger.warning("Error playing rep cue: %s", exc)

    def _fail_connection(self):
        self.encoder.set_connected(False)
        self._stop_playback()
        self._set_connection_state(ConnectionState.ERROR)

    def _on_channel_open(self):
        if self._stopped:
            return
        now = self._clock()
        self.connected_at = now
        self.last_activity_at = now
        self.encoder.set_connected(True)
        self._set_connection_state(ConnectionState.CONNECTED)

    def _on_channel_message(self, message):
        if self._stopped:
            return
        if self.scheduler is not None:
            for chunk in message.audio:
                self.scheduler.enqueue(chunk)
        for call in message.tool_calls:
            self._handle_tool_call(call)

    def _on_channel_close(self):
        self.encoder.set_connected(False)
        self._stop_playback()
        self._set_connection_state(ConnectionState.DISCONNECTED)

    def _on_channel_error(self, error):
        logger.error("Coaching channel error: %s", error)
        self._fail_connection()

    def _send(self, method_name, *args):
        if self.channel is None or self.connection_state != ConnectionState.CONNECTED:
            return False
        try:
            getattr(self.channel, method_name)(*args)
            return True
        except Exception as exc:
            logger.error("Coaching channel %s failed: %s", method_name, exc)
            self._fail_connection()
            return False

    def _send_text(self, text):
        return self._send("send_text", text)

    def _handle_tool_call(self, call):
        args = call.args or {}
        if call.name == "updateWorkoutStats":
            # The coach's own count is advisory; the local counter stays authoritative.
            feedback = args.get("feedback")
            if feedback:
                self._publish_feedback(str(feedback))
            result = "UI Updated"
        elif call.name == "changeExercise":
            name = args.get("exerciseName")
            definition = find_exercise(name)
            if definition is None:
                result = f"Unknown exercise {name}"
            else:
                self.exercise_locked = True
                self._switch_exercise(definition, reset_count=True)
                result = f"Switched to {definition.display_name}"
        elif call.name == "getWorkoutHistory":
            result = self.history_summary()
        elif call.name == "stopWorkout":
            self._send("send_tool_response", call.id, call.name, "Workout Stopped")
            self.stop()
            return
        else:
            logger.warning("Unsupported coach tool call: %s", call.name)
            result = f"Unsupported tool {call.name}"
        self._send("send_tool_response", call.id, call.name, result)

    def check_circuit_breaker(self, now=None):
        """Disconnect the coach after the session cap or a long idle spell."""
        if self.connection_state != ConnectionState.CONNECTED or self.connected_at is None:
            return None
        now = self._clock() if now is None else now
        reason = None
        if now - self.connected_at > MAX_SESSION_SEC:
            reason = "Auto-disconnected: Max session time reached."
        elif self.last_activity_at is not None and now - self.last_activity_at > INACTIVITY_SEC:
            reason = "Auto-disconnected: No activity detected."
        if reason:
            logger.info("Circuit breaker tripped: %s", reason)
            self.disconnect_coaching()
            self._publish_feedback(reason)
        return reason

    # ------------------------------------------------------------------
    # projections

    def history_summary(self):
        if not self.history:
            return "No events recorded yet."
        return "\n".join(
            f"[{item['time']}] {item['type'].upper()}: {item['detail']}" for item in self.history
        )

    def snapshot(self):
        state = self.rep_counter.state
        velocity = self.last_velocity
        return SessionSnapshot(
            exercise_id=self.rep_counter.exercise_id,
            display_name=self.rep_counter.definition.display_name,
            rep_count=state.rep_count,
            machine_state=state.machine_state.value,
            feedback=state.last_feedback,
            progress_percent=self.last_percent,
            last_rep_duration=self.rep_counter.last_rep_duration,
            average_rep_duration=self.rep_counter.average_rep_duration,
            connection_state=self.connection_state.value,
            suggestion=self.last_suggestion,
            velocity=velocity.velocity if velocity else 0.0,
            is_explosive=bool(velocity and velocity.is_explosive),
            is_weighted=self.weight_result.is_weighted,
            weight_label=self.weight_result.object_label,
            exercise_locked=self.exercise_locked,
        )

    def complete_set(self):
        """Close the current set and return a record for the persistence layer."""
        state = self.rep_counter.state
        if state.rep_count <= 0:
            return None
        record = {
            "id": str(uuid.uuid4()),
            "exercise": self.rep_counter.exercise_id,
            "reps": int(state.rep_count),
            "avg_rep_duration": self.rep_counter.average_rep_duration,
            "weighted": bool(self.weight_result.is_weighted),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "date": datetime.now(timezone.utc).strftime("%Y-%m-%d"),
        }
        self.rep_counter.reset(reset_count=True)
        self._publish_feedback(self.rep_counter.state.last_feedback)
        logger.info("Set complete: %s x %s", record["reps"], record["exercise"])
        return record
