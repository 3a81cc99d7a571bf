"""Continuous recognizer adapter using DashScope realtime ASR.

``paraformer-realtime-v2`` accepts a stream of 16 kHz PCM frames and reports
growing sentence hypotheses through a callback object.  A hypothesis becomes
final when the service marks the sentence as ended.  The service closes the
session on its own from time to time; ``on_end`` tells the owner so it can
start a new one.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Callable, Optional

import dashscope
from dashscope.audio.asr import Recognition, RecognitionCallback, RecognitionResult

from errors import ASR_PROTOCOL_ERROR, AUTH_FAILED, NETWORK_ERROR
from models import RecognitionEvent, RecognitionKind

logger = logging.getLogger(__name__)

EventCallback = Callable[[RecognitionEvent], None]
EndCallback = Callable[[], None]


def language_hint(locale: str) -> str:
    """Primary language subtag of a locale tag ("es-ES" -> "es")."""
    return locale.replace("_", "-").split("-")[0].lower() or "es"


def to_error_event(message: str) -> RecognitionEvent:
    """Map an SDK/network failure message to a standard error event."""
    low = message.lower()
    if "401" in low or "403" in low or "auth" in low or "api key" in low or "apikey" in low:
        code = AUTH_FAILED
        retryable = False
    elif "timeout" in low or "network" in low or "connection" in low or "no-speech" in low:
        code = NETWORK_ERROR
        retryable = True
    else:
        code = ASR_PROTOCOL_ERROR
        retryable = True
    return RecognitionEvent(
        kind=RecognitionKind.ERROR.value,
        code=code,
        message=message,
        retryable=retryable,
    )


def _sentence_of(result: Any) -> dict:
    sentence = result.get_sentence()
    if isinstance(sentence, list):
        sentence = sentence[-1] if sentence else {}
    return sentence if isinstance(sentence, dict) else {}


class _RecognitionCallback(RecognitionCallback):
    def __init__(self, on_event: EventCallback, on_end: EndCallback) -> None:
        super().__init__()
        self._on_event = on_event
        self.on_end_callback = on_end

    def on_open(self) -> None:
        logger.debug("Recognition session opened")

    def on_event(self, result: RecognitionResult) -> None:
        sentence = _sentence_of(result)
        text = str(sentence.get("text", ""))
        if not text:
            return
        final = RecognitionResult.is_sentence_end(sentence)
        kind = RecognitionKind.FINAL if final else RecognitionKind.PARTIAL
        self._on_event(RecognitionEvent(kind=kind.value, text=text))

    def on_error(self, result: RecognitionResult) -> None:
        message = str(getattr(result, "message", "") or result)
        self._on_event(to_error_event(message))

    def on_complete(self) -> None:
        logger.debug("Recognition session completed")

    def on_close(self) -> None:
        logger.debug("Recognition session closed")
        self.on_end_callback()


class DashscopeStreamingRecognizer:
    def __init__(
        self,
        api_key: str,
        model: str = "paraformer-realtime-v2",
        language: str = "es-ES",
        sample_rate: int = 16000,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = language
        self._sample_rate = sample_rate
        self._lock = threading.RLock()
        self._recognition: Optional[Recognition] = None

    @property
    def running(self) -> bool:
        return self._recognition is not None

    def start(self, on_event: EventCallback, on_end: EndCallback) -> None:
        with self._lock:
            if self._recognition is not None:
                return
            api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
            if not api_key:
                raise ValueError("No DashScope API key configured")
            dashscope.api_key = api_key

            callback = _RecognitionCallback(on_event, on_end)
            recognition = Recognition(
                model=self._model,
                format="pcm",
                sample_rate=self._sample_rate,
                language_hints=[language_hint(self._language)],
                callback=callback,
            )

            def _ended() -> None:
                # Stale sessions and deliberate stops do not signal an end.
                with self._lock:
                    if self._recognition is not recognition:
                        return
                    self._recognition = None
                on_end()

            callback.on_end_callback = _ended
            recognition.start()
            self._recognition = recognition

    def send(self, pcm16_bytes: bytes) -> None:
        recognition = self._recognition
        if recognition is None:
            raise RuntimeError("recognizer is not running")
        recognition.send_audio_frame(pcm16_bytes)

    def stop(self) -> None:
        with self._lock:
            recognition = self._recognition
            self._recognition = None
        if recognition is None:
            return
        try:
            recognition.stop()
        except Exception:
            logger.debug("Recognition stop raised", exc_info=True)
