# fitcore/channel.py

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ToolCall:
    name: str
    args: dict = field(default_factory=dict)
    id: Optional[str] = None


@dataclass(frozen=True)
class ChannelMessage:
    """One inbound message: speech chunks (base64 PCM16), text and tool calls."""

    audio: Tuple[str, ...] = ()
    text: Optional[str] = None
    tool_calls: Tuple[ToolCall, ...] = ()


class CoachingChannel(ABC):
    """
    Bidirectional stream to the remote coach. Transport is up to subclasses;
    they report lifecycle through the bound callbacks.
    """

    def __init__(self):
        self._on_open = None
        self._on_message = None
        self._on_close = None
        self._on_error = None

    def bind(self, on_open=None, on_message=None, on_close=None, on_error=None):
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._on_error = on_error

    def notify_open(self):
        if self._on_open:
            self._on_open()

    def notify_message(self, message):
        if self._on_message:
            self._on_message(message)

    def notify_close(self):
        if self._on_close:
            self._on_close()

    def notify_error(self, error):
        if self._on_error:
            self._on_error(error)

    @abstractmethod
    def connect(self):
        pass

    @abstractmethod
    def send_realtime_input(self, media):
        """media: {"data": base64 str, "mime_type": str}"""
        pass

    @abstractmethod
    def send_text(self, text):
        pass

    @abstractmethod
    def send_tool_response(self, call_id, name, result):
        pass

    @abstractmethod
    def close(self):
        pass
