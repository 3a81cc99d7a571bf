"""Restartable continuous speech listener."""

from __future__ import annotations

import logging
import threading
from queue import Empty, Full, Queue
from typing import Callable, Iterator, Optional

from errors import AUTH_FAILED, message_for
from interfaces import StreamingRecognizer
from models import RecognitionEvent, RecognitionKind, SessionContext, TranscriptEvent, now_ms

logger = logging.getLogger(__name__)

NoticeCallback = Callable[[str, str], None]


class ContinuousListener:
    """Feeds the live stream into a recognizer and republishes its hypotheses.

    The recognizer ends sessions on its own; the pump thread starts a new one
    whenever that happens, for as long as the session is listening.
    """

    def __init__(
        self,
        session: SessionContext,
        recognizer: StreamingRecognizer,
        restart_delay_s: float = 0.5,
        queue_maxsize: int = 200,
        on_notice: Optional[NoticeCallback] = None,
    ) -> None:
        self._session = session
        self._recognizer = recognizer
        self._restart_delay_s = restart_delay_s
        self._on_notice = on_notice
        self._events: Queue[TranscriptEvent | None] = Queue(maxsize=queue_maxsize)
        self._stop_event = threading.Event()
        self._ended = threading.Event()
        self._restart_allowed = True
        self._result_index = 0
        self._track = None
        self._thread: Optional[threading.Thread] = None
        self.dropped_events = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        stream = self._session.live_stream
        if stream is None or not self._session.active:
            raise RuntimeError("microphone is not available")
        self._stop_event.clear()
        self._restart_allowed = True
        self._events = Queue(maxsize=self._events.maxsize)
        self._track = stream.open_track("listener")
        self._ended.set()  # first pass through the pump opens the session
        self._thread = threading.Thread(target=self._pump, name="listener-pump", daemon=True)
        self._thread.start()
        logger.info("Continuous recognition started")

    def stop(self) -> None:
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        try:
            self._recognizer.stop()
        except Exception:
            logger.debug("Recognizer stop raised", exc_info=True)
        if self._track is not None:
            self._track.stop()
        try:
            self._events.put_nowait(None)
        except Full:
            pass
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        logger.info("Continuous recognition stopped")

    def events(self) -> Iterator[TranscriptEvent]:
        """Yield transcript events until listening stops.

        Arrival order is preserved and ``result_index`` never decreases.
        """
        while self._should_run():
            try:
                event = self._events.get(timeout=0.2)
            except Empty:
                continue
            if event is None:
                return
            yield event

    def _should_run(self) -> bool:
        return self._session.active and not self._stop_event.is_set()

    # ------------------------------------------------------------------
    # Pump thread
    # ------------------------------------------------------------------

    def _pump(self) -> None:
        while self._should_run():
            if self._ended.is_set() and self._restart_allowed:
                if not self._open_session():
                    self._stop_event.wait(self._restart_delay_s)
                    continue
            track = self._track
            if track is None:
                return
            frame = track.read(timeout=0.2)
            if frame is None or self._ended.is_set():
                continue
            try:
                self._recognizer.send(frame.pcm16_bytes)
            except Exception as exc:
                logger.debug("Recognizer rejected audio frame: %s", exc)
                self._ended.set()

    def _open_session(self) -> bool:
        self._ended.clear()
        try:
            self._recognizer.start(self._handle_recognition_event, self._handle_end)
        except ValueError as exc:
            # Configuration errors are permanent; no further restarts.
            logger.error("Recognition cannot start: %s", exc)
            self._restart_allowed = False
            self._ended.set()
            if self._on_notice:
                self._on_notice(AUTH_FAILED, message_for(AUTH_FAILED))
            return False
        except Exception as exc:
            logger.warning("Recognition restart failed: %s", exc)
            self._ended.set()
            return False
        logger.debug("Recognition session (re)started")
        return True

    # ------------------------------------------------------------------
    # Recognizer callbacks
    # ------------------------------------------------------------------

    def _handle_end(self) -> None:
        if not self._should_run():
            return
        logger.info("Recognition ended, restarting")
        self._ended.set()

    def _handle_recognition_event(self, event: RecognitionEvent) -> None:
        if event.kind == RecognitionKind.ERROR.value:
            if event.retryable:
                logger.info("Transient recognition error (%s): %s", event.code, event.message)
                return
            logger.error("Recognition error (%s): %s", event.code, event.message)
            if event.code == AUTH_FAILED:
                self._restart_allowed = False
                if self._on_notice:
                    self._on_notice(AUTH_FAILED, message_for(AUTH_FAILED))
            return

        is_final = event.kind == RecognitionKind.FINAL.value
        transcript = TranscriptEvent(
            text=event.text,
            is_final=is_final,
            timestamp_ms=now_ms(),
            result_index=self._result_index,
        )
        if is_final:
            self._result_index += 1
        try:
            self._events.put_nowait(transcript)
        except Full:
            self.dropped_events += 1
