"""State-machine based activation orchestration."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from errors import (
    AUDIO_UNAVAILABLE,
    EMPTY_TRANSCRIPTION,
    PROVIDER_ERROR,
    UNKNOWN,
    AudioUnavailableError,
    ProviderError,
    message_for,
)
from interfaces import Transcriber
from models import ActivationEvent, ActivationPath, ActivationState

logger = logging.getLogger(__name__)

StateCallback = Callable[[ActivationState, ActivationState], None]
NoticeCallback = Callable[[str, str], None]
TextCallback = Callable[[str], None]
SearchCallable = Callable[[str], Any]
TimerFactory = Callable[[float, Callable[[], None]], Any]

DEFAULT_COOLDOWN_S = 3.0


class ActivationController:
    """Runs one activation cycle at a time: IDLE -> ACTIVATING -> COOLING_DOWN -> IDLE.

    Activations arriving outside IDLE are dropped, never queued.
    """

    def __init__(
        self,
        search: SearchCallable,
        path: ActivationPath = ActivationPath.PHRASE_MATCH,
        capture: Any = None,
        transcriber: Optional[Transcriber] = None,
        capture_ms: int = 5000,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        chime: Optional[Callable[[], None]] = None,
        timer_factory: TimerFactory = threading.Timer,
        on_state_change: Optional[StateCallback] = None,
        on_notice: Optional[NoticeCallback] = None,
        on_text: Optional[TextCallback] = None,
    ) -> None:
        if path is ActivationPath.RECORD_AND_DISPATCH and (capture is None or transcriber is None):
            raise ValueError("record-and-dispatch needs both a capture and a transcriber")
        self._search = search
        self._path = path
        self._capture = capture
        self._transcriber = transcriber
        self._capture_ms = capture_ms
        self._cooldown_s = cooldown_s
        self._chime = chime
        self._timer_factory = timer_factory
        self._on_state_change = on_state_change
        self._on_notice = on_notice
        self._on_text = on_text

        self._lock = threading.RLock()
        self._state = ActivationState.IDLE
        self._timer: Any = None
        self.dropped_activations = 0

    @property
    def state(self) -> ActivationState:
        return self._state

    @property
    def path(self) -> ActivationPath:
        return self._path

    def handle_activation(self, event: ActivationEvent) -> bool:
        """Run a full cycle for ``event``; False when it was dropped."""
        with self._lock:
            if self._state != ActivationState.IDLE:
                self.dropped_activations += 1
                logger.debug("Activation from %s dropped in %s", event.source.value, self._state.value)
                return False
            self._transition(ActivationState.ACTIVATING)

        logger.info("Activation from %s (confidence=%s)", event.source.value, event.confidence)
        self._play_chime()
        try:
            text = self._resolve_text(event).strip()
        except ProviderError as exc:
            logger.error("Transcription provider failed: %s", exc)
            self._emit_notice(PROVIDER_ERROR)
            self._cool_down()
            return True
        except AudioUnavailableError as exc:
            logger.error("Audio capture failed: %s", exc)
            self._emit_notice(AUDIO_UNAVAILABLE)
            self._cool_down()
            return True
        except Exception:
            logger.exception("Activation cycle failed")
            self._emit_notice(UNKNOWN)
            self._cool_down()
            return True

        if not text:
            logger.warning("Empty transcription")
            self._emit_notice(EMPTY_TRANSCRIPTION)
            self._cool_down()
            return True

        self._run_search(text)
        self._cool_down()
        return True

    def shutdown(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._transition(ActivationState.IDLE)
        close = getattr(self._transcriber, "close", None)
        if close is not None:
            close()

    def _resolve_text(self, event: ActivationEvent) -> str:
        if self._path is ActivationPath.PHRASE_MATCH:
            return event.text
        logger.info("Recording %d ms of audio", self._capture_ms)
        audio = self._capture.capture(self._capture_ms)
        logger.info("Sending %d bytes to the transcription provider", audio.byte_length)
        return self._transcriber.transcribe(audio)

    def _run_search(self, text: str) -> None:
        logger.info("Searching for %r", text)
        if self._on_text:
            self._on_text(text)
        try:
            self._search(text)
        except Exception:
            logger.exception("Search failed")

    def _play_chime(self) -> None:
        if self._chime is None:
            return
        try:
            self._chime()
        except Exception as exc:
            logger.warning("Could not play activation sound: %s", exc)

    def _cool_down(self) -> None:
        with self._lock:
            self._transition(ActivationState.COOLING_DOWN)
            self._cancel_timer()
            timer = self._timer_factory(self._cooldown_s, self._finish_cooldown)
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer
            timer.start()

    def _finish_cooldown(self) -> None:
        with self._lock:
            self._timer = None
            if self._state == ActivationState.COOLING_DOWN:
                self._transition(ActivationState.IDLE)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit_notice(self, code: str) -> None:
        if self._on_notice:
            self._on_notice(code, message_for(code))

    def _transition(self, to_state: ActivationState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
