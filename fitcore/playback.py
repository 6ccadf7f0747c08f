# fitcore/playback.py

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import numpy as np

from .audio_codec import AudioDecodeError, decode_pcm16_base64
from .config import (
    CUE_DURATION_SEC,
    CUE_END_GAIN,
    CUE_END_HZ,
    CUE_START_GAIN,
    CUE_START_HZ,
    PLAYBACK_SAMPLE_RATE,
)

logger = logging.getLogger(__name__)


class PlaybackEngine(ABC):
    """Output device with its own running clock, in seconds."""

    @property
    @abstractmethod
    def current_time(self):
        pass

    @abstractmethod
    def play(self, samples, start_time, on_ended=None):
        """Schedule samples to start at ``start_time``; return a handle with stop()."""
        pass


def synthesize_cue(
    sample_rate=PLAYBACK_SAMPLE_RATE,
    duration=CUE_DURATION_SEC,
    start_hz=CUE_START_HZ,
    end_hz=CUE_END_HZ,
    start_gain=CUE_START_GAIN,
    end_gain=CUE_END_GAIN,
):
    """
    Short sine cue whose pitch and gain both ramp exponentially from their
    start to end values over ``duration`` seconds. Returns float32 samples.
    """
    count = int(round(duration * sample_rate))
    progress = np.arange(count, dtype=np.float64) / (duration * sample_rate)
    pitch_ratio = end_hz / start_hz
    # Phase is the integral of the exponential frequency ramp.
    phase = 2.0 * np.pi * start_hz * duration * (pitch_ratio ** progress - 1.0) / np.log(pitch_ratio)
    gain = start_gain * (end_gain / start_gain) ** progress
    return (gain * np.sin(phase)).astype(np.float32)


@dataclass
class AudioPlaybackClock:
    next_start_time: float = 0.0
    active_sources: set = field(default_factory=set)


@dataclass(frozen=True, eq=False)
class ScheduledChunk:
    start_time: float
    duration: float
    sample_count: int
    source: object


class AudioPlaybackScheduler:
    """
    Queues decoded speech chunks back to back on the engine clock.

    A chunk that arrives after the queue has drained (the cursor is behind the
    engine clock) is scheduled at the current engine time instead of the stale
    cursor, so the cursor never drifts behind real playback.
    """

    def __init__(self, engine, sample_rate=PLAYBACK_SAMPLE_RATE):
        self.engine = engine
        self.sample_rate = int(sample_rate)
        self.clock = AudioPlaybackClock()
        self.dropped_chunks = 0
        self._cue_samples = None

    @property
    def next_start_time(self):
        return self.clock.next_start_time

    @property
    def active_count(self):
        return len(self.clock.active_sources)

    def schedule_samples(self, samples):
        duration = len(samples) / self.sample_rate
        now = self.engine.current_time
        if self.clock.next_start_time < now:
            if self.clock.next_start_time > 0:
                logger.debug("Playback underrun; resyncing cursor to %.3fs", now)
            self.clock.next_start_time = now

        chunk = self._play_at(samples, self.clock.next_start_time)
        self.clock.next_start_time = chunk.start_time + duration
        return chunk

    def play_cue(self):
        """Play the rep cue right now, over any queued speech; the speech cursor is untouched."""
        if self._cue_samples is None:
            self._cue_samples = synthesize_cue(sample_rate=self.sample_rate)
        return self._play_at(self._cue_samples, self.engine.current_time)

    def _play_at(self, samples, start_time):
        holder = {}

        def _ended():
            chunk = holder.get("chunk")
            if chunk is not None:
                self.clock.active_sources.discard(chunk)

        source = self.engine.play(samples, start_time, on_ended=_ended)
        sample_count = len(samples)
        chunk = ScheduledChunk(
            start_time=start_time,
            duration=sample_count / self.sample_rate,
            sample_count=sample_count,
            source=source,
        )
        holder["chunk"] = chunk
        self.clock.active_sources.add(chunk)
        return chunk

    def enqueue(self, payload):
        """Decode a base64 PCM16 chunk and schedule it; malformed chunks are dropped."""
        try:
            samples = decode_pcm16_base64(payload)
        except AudioDecodeError as exc:
            self.dropped_chunks += 1
            logger.error("Audio decode error, dropping chunk: %s", exc)
            return None
        return self.schedule_samples(samples)

    def stop_all(self):
        for chunk in list(self.clock.active_sources):
            try:
                chunk.source.stop()
            except Exception as exc:
                logger.warning("Failed to stop audio chunk at %.3fs: %s", chunk.start_time, exc)
        self.clock.active_sources.clear()
        self.clock.next_start_time = 0.0
