import unittest
from unittest.mock import patch

import numpy as np

from fitcore.audio_codec import encode_pcm16_base64
from fitcore.channel import ChannelMessage, CoachingChannel, ConnectionState, ToolCall
from fitcore.config import SessionConfig
from fitcore.exercise_catalog import UnknownExerciseError
from fitcore.weights import DetectedObject

from pose_fixtures import squat_pose
from test_playback import FakeEngine

try:
    from PySide6.QtCore import QCoreApplication, QObject, Signal

    from livesession.session import LiveSession
except ModuleNotFoundError:
    QCoreApplication = None
    LiveSession = None


class FakeChannel(CoachingChannel):
    def __init__(self):
        super().__init__()
        self.connected = False
        self.closed = 0
        self.realtime = []
        self.texts = []
        self.tool_responses = []
        self.fail_sends = False

    def connect(self):
        self.connected = True

    def send_realtime_input(self, media):
        if self.fail_sends:
            raise ConnectionError("socket closed")
        self.realtime.append(media)

    def send_text(self, text):
        if self.fail_sends:
            raise ConnectionError("socket closed")
        self.texts.append(text)

    def send_tool_response(self, call_id, name, result):
        self.tool_responses.append((call_id, name, result))

    def close(self):
        self.closed += 1


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


if QCoreApplication is not None:

    class FakeFrameSource(QObject):
        frame_ready = Signal(object, float, object)

        def __init__(self):
            super().__init__()
            self.started = 0
            self.stopped = 0

        def start(self):
            self.started += 1

        def stop(self):
            self.stopped += 1

    class FakeMicrophone(QObject):
        block_captured = Signal(object)

        def __init__(self, fail_on_close=False):
            super().__init__()
            self.fail_on_close = fail_on_close
            self.started = 0

        def start(self):
            self.started += 1

        def close(self):
            if self.fail_on_close:
                raise OSError("PortAudio error")


def squat_rep(session, start=0.0, step=1.0 / 30.0):
    """Feed one smoothed squat through the session; returns the next timestamp."""
    ts = start
    for angle, frames in ((170, 10), (60, 15), (175, 20)):
        for _ in range(frames):
            session.on_frame(squat_pose(angle), ts)
            ts += step
    return ts


@unittest.skipIf(LiveSession is None, "PySide6 is not installed in this environment")
class LiveSessionTest(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = QCoreApplication.instance() or QCoreApplication([])

    def setUp(self):
        self.channel = FakeChannel()
        self.engine = FakeEngine()
        self.clock = FakeClock()
        self.frames = FakeFrameSource()
        self.microphone = FakeMicrophone()
        self.session = LiveSession(
            SessionConfig(exercise_id="squat", velocity_point="none"),
            channel=self.channel,
            playback_engine=self.engine,
            frame_source=self.frames,
            microphone=self.microphone,
            clock=self.clock,
        )

    def tearDown(self):
        self.session.stop()

    def open_channel(self):
        self.session.connect_coaching()
        self.channel.notify_open()

    def test_unknown_exercise_is_rejected(self):
        with self.assertRaises(UnknownExerciseError):
            LiveSession(SessionConfig(exercise_id="burpee"))

    def test_rep_emits_event_and_coach_cue(self):
        events = []
        self.session.rep_completed.connect(events.append)
        self.open_channel()

        squat_rep(self.session)

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["exercise_id"], "squat")
        self.assertEqual(events[0]["count"], 1)
        self.assertIn("User did rep 1 of Squats.", self.channel.texts)
        self.assertEqual(self.session.snapshot().rep_count, 1)
        self.assertIn("REP: Rep 1", self.session.history_summary())

    def test_rep_plays_cue_outside_speech_queue(self):
        self.engine.now = 0.4
        squat_rep(self.session)

        self.assertEqual(len(self.engine.sources), 1)
        cue = self.engine.sources[0]
        self.assertEqual(cue.start_time, 0.4)
        self.assertEqual(len(cue.samples), 12000)
        self.assertEqual(self.session.scheduler.next_start_time, 0.0)

    def test_rep_counts_while_offline(self):
        squat_rep(self.session)
        self.assertEqual(self.session.rep_counter.state.rep_count, 1)
        self.assertEqual(self.channel.texts, [])

    def test_frames_arrive_through_frame_source(self):
        self.session.start()
        self.assertEqual(self.frames.started, 1)
        self.frames.frame_ready.emit(squat_pose(120), 0.0, [])
        self.assertLess(self.session.rep_counter.state.smoothed_metric, 160.0)

    def test_audio_dropped_until_connected(self):
        block = np.zeros(4096, dtype=np.float32)
        self.session.on_audio_block(block)
        self.session.connect_coaching()
        self.session.on_audio_block(block)
        self.assertEqual(self.channel.realtime, [])
        self.assertEqual(self.session.connection_state, ConnectionState.CONNECTING)

        self.channel.notify_open()
        self.session.on_audio_block(block)
        self.assertEqual(len(self.channel.realtime), 1)
        self.assertEqual(self.channel.realtime[0]["mime_type"], "audio/pcm;rate=16000")

        self.channel.notify_close()
        self.session.on_audio_block(block)
        self.assertEqual(len(self.channel.realtime), 1)
        self.assertEqual(self.session.connection_state, ConnectionState.DISCONNECTED)

    def test_microphone_blocks_reach_channel(self):
        self.session.start()
        self.open_channel()
        self.microphone.block_captured.emit(np.zeros(4096, dtype=np.float32))
        self.assertEqual(len(self.channel.realtime), 1)

    def test_inbound_audio_is_scheduled(self):
        self.open_channel()
        chunk = encode_pcm16_base64(np.zeros(24000, dtype=np.float32))
        self.channel.notify_message(ChannelMessage(audio=(chunk, "%%%", chunk)))

        self.assertEqual([s.start_time for s in self.engine.sources], [0.0, 1.0])
        self.assertEqual(self.session.scheduler.dropped_chunks, 1)

    def test_channel_error_sets_error_state_and_stops_playback(self):
        states = []
        self.session.connection_changed.connect(states.append)
        self.open_channel()
        chunk = encode_pcm16_base64(np.zeros(2400, dtype=np.float32))
        self.channel.notify_message(ChannelMessage(audio=(chunk,)))

        self.channel.notify_error(ConnectionError("reset by peer"))

        self.assertEqual(states, ["CONNECTING", "CONNECTED", "ERROR"])
        self.assertTrue(self.engine.sources[0].stopped)
        self.assertEqual(self.session.scheduler.next_start_time, 0.0)
        self.session.on_audio_block(np.zeros(16, dtype=np.float32))
        self.assertEqual(self.channel.realtime, [])

    def test_send_failure_sets_error_state(self):
        self.open_channel()
        self.channel.fail_sends = True
        self.session.on_audio_block(np.zeros(16, dtype=np.float32))
        self.assertEqual(self.session.connection_state, ConnectionState.ERROR)

    def test_change_exercise_tool_call(self):
        self.open_channel()
        changes = []
        self.session.exercise_changed.connect(changes.append)
        squat_rep(self.session)

        call = ToolCall(name="changeExercise", args={"exerciseName": "Pushups"}, id="t1")
        self.channel.notify_message(ChannelMessage(tool_calls=(call,)))

        self.assertEqual(changes, ["push_up"])
        self.assertEqual(self.session.rep_counter.state.rep_count, 0)
        self.assertTrue(self.session.exercise_locked)
        self.assertEqual(self.channel.tool_responses, [("t1", "changeExercise", "Switched to Pushups")])

    def test_update_stats_tool_call_does_not_touch_count(self):
        self.open_channel()
        feedback = []
        self.session.feedback_changed.connect(feedback.append)
        call = ToolCall(
            name="updateWorkoutStats",
            args={"repCount": 12, "feedback": "Nice depth"},
            id="t2",
        )
        self.channel.notify_message(ChannelMessage(tool_calls=(call,)))

        self.assertEqual(self.session.rep_counter.state.rep_count, 0)
        self.assertEqual(feedback, ["Nice depth"])
        self.assertEqual(self.channel.tool_responses[-1], ("t2", "updateWorkoutStats", "UI Updated"))

    def test_history_and_stop_tool_calls(self):
        self.open_channel()
        stopped = []
        self.session.session_stopped.connect(lambda: stopped.append(True))
        calls = (
            ToolCall(name="getWorkoutHistory", id="h"),
            ToolCall(name="stopWorkout", id="s"),
        )
        self.channel.notify_message(ChannelMessage(tool_calls=calls))

        self.assertEqual(self.channel.tool_responses[0], ("h", "getWorkoutHistory", "No events recorded yet."))
        self.assertEqual(self.channel.tool_responses[1], ("s", "stopWorkout", "Workout Stopped"))
        self.assertEqual(stopped, [True])
        self.assertEqual(self.session.connection_state, ConnectionState.DISCONNECTED)

    def test_locked_exercise_ignores_classifier(self):
        with patch("livesession.session.classify_exercise", return_value="jumping_jack"):
            for i in range(20):
                self.session.on_frame(squat_pose(170), i / 30.0)
        self.assertEqual(self.session.rep_counter.exercise_id, "squat")
        self.assertEqual(self.session.last_suggestion, "jumping_jack")

    def test_auto_detect_switches_after_stable_majority(self):
        session = LiveSession(
            SessionConfig(exercise_id="squat", auto_detect=True, velocity_point="none"),
            clock=self.clock,
        )
        suggestions = []
        session.suggestion_changed.connect(suggestions.append)
        with patch("livesession.session.classify_exercise", return_value="sit_up"):
            for i in range(14):
                session.on_frame(squat_pose(170), i / 30.0)
            self.assertEqual(session.rep_counter.exercise_id, "squat")
            session.on_frame(squat_pose(170), 0.5)
        self.assertEqual(session.rep_counter.exercise_id, "crunch")
        self.assertEqual(suggestions, [{"exercise_id": "sit_up"}])

        session.select_exercise("squat")
        with patch("livesession.session.classify_exercise", return_value="lunge"):
            for i in range(20):
                session.on_frame(squat_pose(170), 1.0 + i / 30.0)
        self.assertEqual(session.rep_counter.exercise_id, "squat")
        session.stop()

    def test_auto_detect_switch_plays_cue(self):
        engine = FakeEngine()
        session = LiveSession(
            SessionConfig(exercise_id="squat", auto_detect=True, velocity_point="none"),
            playback_engine=engine,
            clock=self.clock,
        )
        with patch("livesession.session.classify_exercise", return_value="push_up"):
            for i in range(14):
                session.on_frame(squat_pose(170), i / 30.0)
            self.assertEqual(engine.sources, [])
            session.on_frame(squat_pose(170), 0.5)

        self.assertEqual(session.rep_counter.exercise_id, "push_up")
        self.assertEqual(len(engine.sources), 1)
        self.assertEqual(len(engine.sources[0].samples), 12000)
        session.stop()

    def test_unknown_velocity_point_disables_tracking_without_touching_config(self):
        config = SessionConfig(exercise_id="squat", velocity_point="elbowz")
        session = LiveSession(config, clock=self.clock)
        velocities = []
        session.velocity_updated.connect(velocities.append)

        with self.assertLogs("livesession.session", level="WARNING") as logs:
            session.on_frame(squat_pose(170), 0.0)
            session.on_frame(squat_pose(170), 0.1)

        self.assertEqual(config.velocity_point, "elbowz")
        self.assertEqual(velocities, [])
        self.assertEqual(len([line for line in logs.output if "elbowz" in line]), 1)
        session.stop()

    def test_weight_detection(self):
        session = LiveSession(
            SessionConfig(exercise_id="bicep_curl", detect_weights=True, velocity_point="object"),
            clock=self.clock,
        )
        weights = []
        velocities = []
        session.weight_changed.connect(weights.append)
        session.velocity_updated.connect(velocities.append)
        skeleton = squat_pose(170)
        skeleton[15].x, skeleton[15].y = 0.5, 0.5
        dumbbell = DetectedObject(bbox=(300, 220, 40, 40), label="dumbbell")

        session.on_frame(skeleton, 0.0, [dumbbell])
        session.on_frame(skeleton, 0.1, [dumbbell])

        self.assertEqual(weights, [{"is_weighted": True, "object_label": "dumbbell"}])
        self.assertTrue(session.snapshot().is_weighted)
        self.assertEqual(len(velocities), 2)
        self.assertEqual(velocities[1]["velocity"], 0.0)
        session.stop()

    def test_stop_is_idempotent_and_tolerates_device_errors(self):
        microphone = FakeMicrophone(fail_on_close=True)
        session = LiveSession(
            SessionConfig(exercise_id="squat"),
            channel=self.channel,
            frame_source=self.frames,
            microphone=microphone,
            clock=self.clock,
        )
        stopped = []
        session.session_stopped.connect(lambda: stopped.append(True))
        session.start()

        session.stop()
        session.stop()

        self.assertEqual(stopped, [True])
        self.assertEqual(self.frames.stopped, 1)
        self.assertEqual(self.channel.closed, 1)
        self.assertIsNone(session.on_frame(squat_pose(120), 0.0))
        with self.assertRaises(RuntimeError):
            session.start()

    def test_circuit_breaker_disconnects_idle_session(self):
        self.open_channel()
        self.clock.now = 60.0
        self.assertIsNone(self.session.check_circuit_breaker())

        self.clock.now = 121.0
        reason = self.session.check_circuit_breaker()

        self.assertEqual(reason, "Auto-disconnected: No activity detected.")
        self.assertEqual(self.session.connection_state, ConnectionState.DISCONNECTED)
        self.assertEqual(self.channel.closed, 1)

    def test_circuit_breaker_caps_session_length(self):
        self.open_channel()
        self.clock.now = 100.0
        squat_rep(self.session, start=100.0)
        self.clock.now = 601.0
        self.assertEqual(
            self.session.check_circuit_breaker(),
            "Auto-disconnected: Max session time reached.",
        )

    def test_complete_set_returns_record_and_resets(self):
        squat_rep(self.session)
        record = self.session.complete_set()
        self.assertEqual(record["exercise"], "squat")
        self.assertEqual(record["reps"], 1)
        self.assertEqual(self.session.rep_counter.state.rep_count, 0)
        self.assertIsNone(self.session.complete_set())


if __name__ == "__main__":
    unittest.main()
