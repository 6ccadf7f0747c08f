# fitcore/rep_counter.py

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple

from .config import (
    FORM_FEEDBACK_INTERVAL_SEC,
    HYSTERESIS_BUFFER,
    PROGRESS_CUE_PERCENT,
    REP_DEBOUNCE_SEC,
    SMOOTHING_ALPHA,
)
from .exercise_catalog import feet_visible, get_exercise
from .utils import clamp01, smooth_value

logger = logging.getLogger(__name__)

READY_FEEDBACK = "Ready"
RETURN_FEEDBACK = "Return to start"
REP_COMPLETE_FEEDBACK = "Rep Complete!"
FEET_HIDDEN_FEEDBACK = "Back up! I can't see your feet."


class MachineState(str, Enum):
    START = "START"
    MIDDLE = "MIDDLE"


@dataclass
class RepCounterState:
    current_exercise_id: str
    smoothed_metric: Optional[float] = None
    machine_state: MachineState = MachineState.START
    rep_count: int = 0
    last_rep_timestamp: Optional[float] = None
    last_feedback: str = READY_FEEDBACK
    rep_start_timestamp: Optional[float] = None
    rep_durations: List[float] = field(default_factory=list)
    last_form_warning_timestamp: Optional[float] = None
    feet_visible: bool = True


@dataclass(frozen=True)
class RepEvent:
    exercise_id: str
    count: int
    timestamp: float
    duration: Optional[float] = None


@dataclass(frozen=True)
class RepUpdate:
    exercise_id: str
    metric: float
    percent: float
    machine_state: MachineState
    rep_count: int
    feedback: str
    focus_point: Optional[Tuple[float, float]] = None
    rep_event: Optional[RepEvent] = None
    form_warning: Optional[str] = None


class RepCounter:
    """
    Per-session repetition state machine.

    ``update`` consumes an already smoothed metric value; ``process_frame``
    derives the metric from a skeleton, smooths it and then calls ``update``.
    Timestamps are in seconds on any monotonic clock.
    """

    def __init__(
        self,
        exercise_id,
        sensitivity=0.0,
        hysteresis=HYSTERESIS_BUFFER,
        debounce_sec=REP_DEBOUNCE_SEC,
        smoothing_alpha=SMOOTHING_ALPHA,
        form_feedback_interval=FORM_FEEDBACK_INTERVAL_SEC,
    ):
        self.definition = get_exercise(exercise_id)
        self.sensitivity = float(sensitivity)
        self.hysteresis = float(hysteresis)
        self.debounce_sec = float(debounce_sec)
        self.smoothing_alpha = float(smoothing_alpha)
        self.form_feedback_interval = float(form_feedback_interval)
        self.state = RepCounterState(current_exercise_id=self.definition.id)
        self._seed_metric()

    @property
    def exercise_id(self):
        return self.definition.id

    @property
    def start_threshold(self):
        return float(self.definition.thresholds.start)

    @property
    def end_threshold(self):
        return float(self.definition.thresholds.end) + self.sensitivity

    def _seed_metric(self):
        # The start threshold is the resting position for every mode, so a
        # freshly seeded filter can never satisfy the end crossing.
        self.state.smoothed_metric = self.start_threshold

    def reset(self, reset_count=True):
        exercise_id = self.definition.id
        rep_count = 0 if reset_count else self.state.rep_count
        last_rep = None if reset_count else self.state.last_rep_timestamp
        self.state = RepCounterState(
            current_exercise_id=exercise_id,
            rep_count=rep_count,
            last_rep_timestamp=last_rep,
        )
        self._seed_metric()

    def switch_exercise(self, exercise_id, reset_count=False):
        definition = get_exercise(exercise_id)
        previous = self.definition.id
        self.definition = definition
        self.state.current_exercise_id = definition.id
        self.state.machine_state = MachineState.START
        self.state.rep_start_timestamp = None
        self.state.last_feedback = READY_FEEDBACK
        self.state.feet_visible = True
        if reset_count:
            self.state.rep_count = 0
            self.state.last_rep_timestamp = None
            self.state.rep_durations = []
        self._seed_metric()
        logger.info("Rep counter switched exercise: %s -> %s", previous, definition.id)

    def progress_percent(self, value):
        start = self.start_threshold
        end = self.end_threshold
        span = start - end if self.definition.thresholds.mode.is_min else end - start
        if span == 0:
            return 0.0
        if self.definition.thresholds.mode.is_min:
            return clamp01((start - value) / span) * 100.0
        return clamp01((value - start) / span) * 100.0

    def _crossed_end(self, value):
        if self.definition.thresholds.mode.is_min:
            return value <= self.end_threshold
        return value >= self.end_threshold

    def _returned_to_start(self, value):
        if self.definition.thresholds.mode.is_min:
            return value >= self.start_threshold - self.hysteresis
        return value <= self.start_threshold + self.hysteresis

    def _debounce_elapsed(self, timestamp):
        last = self.state.last_rep_timestamp
        return last is None or (timestamp - last) >= self.debounce_sec

    @property
    def last_rep_duration(self):
        if not self.state.rep_durations:
            return None
        return self.state.rep_durations[-1]

    @property
    def average_rep_duration(self):
        durations = self.state.rep_durations
        if not durations:
            return None
        return sum(durations) / len(durations)

    def update(self, metric_value, timestamp, focus_point=None):
        state = self.state
        value = float(metric_value)
        state.smoothed_metric = value
        percent = self.progress_percent(value)
        rep_event = None

        if state.machine_state == MachineState.START:
            if self._crossed_end(value):
                state.machine_state = MachineState.MIDDLE
                state.rep_start_timestamp = timestamp
                state.last_feedback = RETURN_FEEDBACK
            elif percent < PROGRESS_CUE_PERCENT:
                state.last_feedback = READY_FEEDBACK
            else:
                state.last_feedback = self.definition.progress_cue
        elif self._returned_to_start(value):
            state.machine_state = MachineState.START
            if self._debounce_elapsed(timestamp):
                state.rep_count += 1
                state.last_rep_timestamp = timestamp
                state.last_feedback = REP_COMPLETE_FEEDBACK
                duration = None
                if state.rep_start_timestamp is not None:
                    duration = max(0.0, timestamp - state.rep_start_timestamp)
                    state.rep_durations.append(duration)
                rep_event = RepEvent(
                    exercise_id=self.definition.id,
                    count=state.rep_count,
                    timestamp=timestamp,
                    duration=duration,
                )
                logger.info(
                    "Rep %s of %s counted (duration=%s)",
                    state.rep_count,
                    self.definition.id,
                    f"{duration:.2f}s" if duration is not None else "n/a",
                )
            else:
                # Returned inside the debounce window: treat the cycle as noise.
                state.last_feedback = READY_FEEDBACK
                logger.debug(
                    "Rejected %s cycle %.3fs after previous rep",
                    self.definition.id,
                    timestamp - state.last_rep_timestamp,
                )
            state.rep_start_timestamp = None

        return RepUpdate(
            exercise_id=self.definition.id,
            metric=value,
            percent=percent,
            machine_state=state.machine_state,
            rep_count=state.rep_count,
            feedback=state.last_feedback,
            focus_point=focus_point,
            rep_event=rep_event,
        )

    def _check_form(self, skeleton, timestamp):
        if self.state.machine_state != MachineState.START:
            return None
        last = self.state.last_form_warning_timestamp
        if last is not None and (timestamp - last) < self.form_feedback_interval:
            return None
        warning = self.definition.check_form(skeleton)
        if warning:
            self.state.last_form_warning_timestamp = timestamp
        return warning

    def process_frame(self, skeleton, timestamp):
        """
        Run one landmark frame through metric, smoother and state machine.
        Returns None when the frame is skipped because of tracking dropout.
        """
        if self.definition.leg_exercise:
            if not feet_visible(skeleton):
                if self.state.feet_visible:
                    self.state.feet_visible = False
                    self.state.last_feedback = FEET_HIDDEN_FEEDBACK
                return None
            if not self.state.feet_visible:
                self.state.feet_visible = True
                if self.state.machine_state == MachineState.MIDDLE:
                    self.state.last_feedback = RETURN_FEEDBACK

        result = self.definition.compute_metric(skeleton)
        if result is None:
            logger.debug("Skipping %s frame: required landmarks unavailable", self.definition.id)
            return None

        form_warning = self._check_form(skeleton, timestamp)
        smoothed = smooth_value(self.state.smoothed_metric, result.value, self.smoothing_alpha)
        update = self.update(smoothed, timestamp, focus_point=result.focus_point)
        if form_warning:
            return replace(update, form_warning=form_warning)
        return update
