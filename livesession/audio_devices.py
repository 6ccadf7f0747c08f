# livesession/audio_devices.py

import logging
import threading

import numpy as np
import sounddevice as sd
from PySide6.QtCore import QObject, Signal

from fitcore.config import CAPTURE_BLOCK_SIZE, CAPTURE_SAMPLE_RATE, PLAYBACK_SAMPLE_RATE
from fitcore.playback import PlaybackEngine

logger = logging.getLogger(__name__)


class MicrophoneCapture(QObject):
    """
    Mono float32 microphone blocks. The PortAudio callback runs on its own
    thread; the signal hands each block over to the receiver's thread.
    """

    block_captured = Signal(object)

    def __init__(self, samplerate=CAPTURE_SAMPLE_RATE, blocksize=CAPTURE_BLOCK_SIZE, device=None, parent=None):
        super().__init__(parent)
        self.samplerate = samplerate
        self.blocksize = blocksize
        self.device = device
        self._stream = None

    def _callback(self, indata, frames, time_info, status):
        if status:
            logger.debug("Microphone stream status: %s", status)
        self.block_captured.emit(indata[:, 0].copy())

    def start(self):
        if self._stream is not None:
            return
        self._stream = sd.InputStream(
            samplerate=self.samplerate,
            blocksize=self.blocksize,
            channels=1,
            dtype="float32",
            device=self.device,
            callback=self._callback,
        )
        self._stream.start()
        logger.info("Microphone capture started (%s Hz, %s-sample blocks).", self.samplerate, self.blocksize)

    def close(self):
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("Microphone capture closed.")


class _SourceFinished(QObject):
    finished = Signal(object)


class _ScheduledSource:
    def __init__(self, engine, samples, start_frame, on_ended):
        self.engine = engine
        self.samples = samples
        self.start_frame = start_frame
        self.on_ended = on_ended
        self.stopped = False

    @property
    def end_frame(self):
        return self.start_frame + len(self.samples)

    def stop(self):
        self.engine._remove(self)


class SoundDevicePlaybackEngine(PlaybackEngine):
    """
    Speaker output whose clock counts rendered frames. Scheduled sources are
    mixed into each output block at their exact sample offsets.
    """

    def __init__(self, samplerate=PLAYBACK_SAMPLE_RATE, device=None, blocksize=0):
        self.samplerate = int(samplerate)
        self.device = device
        self.blocksize = blocksize
        self._lock = threading.Lock()
        self._sources = []
        self._frames_rendered = 0
        self._stream = None
        self._notifier = _SourceFinished()
        self._notifier.finished.connect(self._on_source_finished)

    @property
    def current_time(self):
        with self._lock:
            return self._frames_rendered / self.samplerate

    def start(self):
        if self._stream is not None:
            return
        self._stream = sd.OutputStream(
            samplerate=self.samplerate,
            blocksize=self.blocksize,
            channels=1,
            dtype="float32",
            device=self.device,
            callback=self._callback,
        )
        self._stream.start()
        logger.info("Playback engine started at %s Hz.", self.samplerate)

    def play(self, samples, start_time, on_ended=None):
        source = _ScheduledSource(
            self,
            np.asarray(samples, dtype=np.float32),
            int(round(start_time * self.samplerate)),
            on_ended,
        )
        with self._lock:
            self._sources.append(source)
        return source

    def _remove(self, source):
        with self._lock:
            source.stopped = True
            if source in self._sources:
                self._sources.remove(source)

    def _callback(self, outdata, frames, time_info, status):
        if status:
            logger.debug("Playback stream status: %s", status)
        out = np.zeros(frames, dtype=np.float32)
        finished = []
        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frames
            for source in self._sources:
                if source.end_frame <= block_start:
                    finished.append(source)
                    continue
                if source.start_frame >= block_end:
                    continue
                src_from = max(0, block_start - source.start_frame)
                dst_from = max(0, source.start_frame - block_start)
                count = min(len(source.samples) - src_from, frames - dst_from)
                out[dst_from:dst_from + count] += source.samples[src_from:src_from + count]
                if source.end_frame <= block_end:
                    finished.append(source)
            for source in finished:
                self._sources.remove(source)
            self._frames_rendered = block_end
        outdata[:, 0] = np.clip(out, -1.0, 1.0)
        for source in finished:
            self._notifier.finished.emit(source)

    def _on_source_finished(self, source):
        if source.on_ended and not source.stopped:
            source.on_ended()

    def close(self):
        with self._lock:
            self._sources.clear()
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("Playback engine closed.")
