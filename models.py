"""Core data models for the app."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ActivationState(str, Enum):
    IDLE = "IDLE"
    ACTIVATING = "ACTIVATING"
    COOLING_DOWN = "COOLING_DOWN"


class ActivationSource(str, Enum):
    PHRASE_MATCH = "phrase-match"
    KEYWORD_SPOTTER = "keyword-spotter"


class WakeStrategy(str, Enum):
    PHRASE_MATCH = "phrase-match"
    KEYWORD_SPOTTER = "keyword-spotter"


class ActivationPath(str, Enum):
    PHRASE_MATCH = "phrase-match"
    RECORD_AND_DISPATCH = "record-and-dispatch"


class RecognitionKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class RecognitionEvent:
    kind: str
    text: str = ""
    code: str = ""
    message: str = ""
    retryable: bool = False


@dataclass
class TranscriptEvent:
    text: str
    is_final: bool
    timestamp_ms: int = 0
    result_index: int = 0


@dataclass
class ActivationEvent:
    source: ActivationSource
    confidence: Optional[float] = None
    text: str = ""
    timestamp_ms: int = field(default_factory=now_ms)


@dataclass
class CaptureResult:
    data: bytes
    encoding: str = "audio/wav"
    sample_rate: int = 16000
    channels: int = 1
    pcm16_bytes: bytes = b""

    @property
    def byte_length(self) -> int:
        return len(self.data)


@dataclass
class TranscriptionConfig:
    provider: str = "whisper"
    credential: str = ""
    endpoint: str = ""
    language: str = "es-ES"
    model: str = ""
    region: str = "eastus"
    timeout_s: float = 30.0


class SessionContext:
    """Process-wide session state, passed explicitly to every component."""

    def __init__(self, activation_word: str = "hola") -> None:
        self._lock = threading.RLock()
        self._microphone_permitted = False
        self._is_listening = False
        self._activation_word = activation_word
        self._live_stream: Any = None

    @property
    def microphone_permitted(self) -> bool:
        return self._microphone_permitted

    @microphone_permitted.setter
    def microphone_permitted(self, value: bool) -> None:
        with self._lock:
            self._microphone_permitted = value

    @property
    def is_listening(self) -> bool:
        return self._is_listening

    @is_listening.setter
    def is_listening(self, value: bool) -> None:
        with self._lock:
            self._is_listening = value

    @property
    def activation_word(self) -> str:
        return self._activation_word

    @activation_word.setter
    def activation_word(self, value: str) -> None:
        with self._lock:
            self._activation_word = value

    @property
    def live_stream(self) -> Any:
        return self._live_stream

    @property
    def active(self) -> bool:
        return self._is_listening and self._microphone_permitted

    def attach_stream(self, stream: Any) -> None:
        with self._lock:
            self._live_stream = stream
            self._microphone_permitted = True
            self._is_listening = True

    def detach_stream(self) -> Any:
        """Clear the session flags and hand back the stream, if any, for closing."""
        with self._lock:
            stream = self._live_stream
            self._live_stream = None
            self._is_listening = False
            self._microphone_permitted = False
            return stream
