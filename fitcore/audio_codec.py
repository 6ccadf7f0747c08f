# fitcore/audio_codec.py

import base64
import binascii
import logging

import numpy as np

from .config import CAPTURE_MIME_TYPE

logger = logging.getLogger(__name__)

PCM16_SCALE = 32768.0


class AudioDecodeError(ValueError):
    """Raised when an inbound chunk is not valid base64 16-bit PCM."""


def float_to_pcm16(samples):
    """Convert float samples in [-1, 1] to little-endian int16 PCM bytes."""
    data = np.asarray(samples, dtype=np.float64).reshape(-1)
    scaled = np.clip(np.round(data * PCM16_SCALE), -PCM16_SCALE, PCM16_SCALE - 1)
    return scaled.astype("<i2").tobytes()


def encode_pcm16_base64(samples):
    return base64.b64encode(float_to_pcm16(samples)).decode("ascii")


def decode_pcm16_base64(payload):
    """Decode base64 little-endian int16 PCM to float32 samples in [-1, 1)."""
    try:
        if isinstance(payload, str):
            payload = payload.encode("ascii")
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AudioDecodeError(f"Invalid base64 audio payload: {exc}") from exc
    if not raw:
        raise AudioDecodeError("Empty audio payload.")
    if len(raw) % 2:
        raise AudioDecodeError(f"PCM16 payload has odd byte length {len(raw)}.")
    return np.frombuffer(raw, dtype="<i2").astype(np.float32) / np.float32(PCM16_SCALE)


class AudioCaptureEncoder:
    """
    Turns microphone blocks into realtime-input payloads for the coaching
    channel. Blocks arriving while disconnected are dropped, not buffered.
    """

    def __init__(self, mime_type=CAPTURE_MIME_TYPE):
        self.mime_type = mime_type
        self.connected = False
        self.blocks_sent = 0
        self.blocks_dropped = 0

    def set_connected(self, connected):
        self.connected = bool(connected)

    def encode(self, samples):
        if not self.connected:
            self.blocks_dropped += 1
            return None
        self.blocks_sent += 1
        return {"data": encode_pcm16_base64(samples), "mime_type": self.mime_type}
