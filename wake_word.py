"""Wake-word detection strategies.

Two interchangeable strategies raise :class:`ActivationEvent`:

* :class:`PhraseMatchDetector` watches final transcripts from the continuous
  listener for the configured activation word.
* :class:`KeywordSpotter` runs a frame-level keyword model (Porcupine) over raw
  microphone audio, independent of recognized text.

Only one of them is wired per session.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Optional, Sequence

import numpy as np
import pvporcupine

from interfaces import KeywordModel
from models import ActivationEvent, ActivationSource, SessionContext, TranscriptEvent

logger = logging.getLogger(__name__)

ActivationCallback = Callable[[ActivationEvent], None]

DEFAULT_SENSITIVITY = 0.7


def normalize(text: str) -> str:
    return text.lower().strip()


def contains_activation_word(transcript: str, word: str) -> bool:
    needle = normalize(word)
    if not needle:
        return False
    return needle in normalize(transcript)


class PhraseMatchDetector:
    def __init__(self, session: SessionContext, on_activation: ActivationCallback) -> None:
        self._session = session
        self._on_activation = on_activation

    def handle(self, event: TranscriptEvent) -> bool:
        """Inspect one transcript event; return True if it raised an activation."""
        if not event.is_final:
            logger.debug("Hearing (interim): %s", event.text)
            return False
        word = self._session.activation_word
        if not contains_activation_word(event.text, word):
            logger.debug(
                "Heard %r, waiting for %r", normalize(event.text), normalize(word)
            )
            return False
        logger.info("Activation word detected: %s", word)
        self._on_activation(
            ActivationEvent(source=ActivationSource.PHRASE_MATCH, text=event.text.strip())
        )
        return True

    def run(self, events: Iterable[TranscriptEvent]) -> None:
        for event in events:
            try:
                self.handle(event)
            except Exception:
                logger.exception("Activation handling failed")


class PorcupineKeywordModel:
    """Porcupine engine exposed as a 0/1 scoring keyword model."""

    def __init__(
        self,
        access_key: str,
        keyword: str = "porcupine",
        keyword_path: Optional[str] = None,
        sensitivity: float = DEFAULT_SENSITIVITY,
    ) -> None:
        if not access_key:
            raise ValueError("A Picovoice access key is required for keyword spotting")
        if keyword_path:
            self._engine = pvporcupine.create(
                access_key=access_key,
                keyword_paths=[keyword_path],
                sensitivities=[sensitivity],
            )
        else:
            self._engine = pvporcupine.create(
                access_key=access_key,
                keywords=[keyword],
                sensitivities=[sensitivity],
            )
        self.keyword = keyword_path or keyword
        self.frame_length = self._engine.frame_length
        self.sample_rate = self._engine.sample_rate

    def score(self, pcm: Sequence[int]) -> float:
        return 1.0 if self._engine.process(pcm) >= 0 else 0.0

    def close(self) -> None:
        engine = self._engine
        if engine is not None:
            engine.delete()
            self._engine = None


class KeywordSpotter:
    def __init__(
        self,
        session: SessionContext,
        model: KeywordModel,
        on_activation: ActivationCallback,
        threshold: float = DEFAULT_SENSITIVITY,
    ) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0.0, 1.0], got {threshold}")
        self._session = session
        self._model = model
        self._on_activation = on_activation
        self._threshold = threshold
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._track = None
        self._stream = None
        self._model_lock = threading.Lock()
        self._closing = False
        self._model_closed = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        stream = self._session.live_stream
        if stream is None or not self._session.active:
            raise RuntimeError("microphone is not available")
        stream.claim_processor(self)
        self._stream = stream
        self._stop_event.clear()
        self._track = stream.open_track("keyword-spotter")
        self._thread = threading.Thread(target=self._worker, name="keyword-spotter", daemon=True)
        self._thread.start()
        logger.info("Keyword spotter listening (threshold=%.2f)", self._threshold)

    def stop(self) -> None:
        self._stop_event.set()
        if self._track is not None:
            self._track.stop()
        if self._stream is not None:
            self._stream.release_processor(self)
            self._stream = None
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._thread = None

    def close(self) -> None:
        """Stop listening and release the model.

        A worker still inside ``score`` when the join times out closes the
        model itself on its way out.
        """
        thread = self._thread
        self._closing = True
        self.stop()
        if thread is None or not thread.is_alive():
            self._close_model()

    def process_frame(self, pcm: Sequence[int]) -> bool:
        """Score one frame; raise an activation when it clears the threshold."""
        score = self._model.score(pcm)
        if score < self._threshold:
            return False
        logger.info("Keyword spotted (confidence=%.2f)", score)
        self._on_activation(
            ActivationEvent(source=ActivationSource.KEYWORD_SPOTTER, confidence=score)
        )
        return True

    def _worker(self) -> None:
        try:
            self._spot()
        finally:
            if self._closing:
                self._close_model()

    def _spot(self) -> None:
        frame_length = self._model.frame_length
        pending = np.zeros(0, dtype=np.int16)
        while not self._stop_event.is_set() and self._session.active:
            track = self._track
            if track is None:
                return
            frame = track.read(timeout=0.2)
            if frame is None:
                continue
            pending = np.concatenate([pending, np.frombuffer(frame.pcm16_bytes, dtype=np.int16)])
            while len(pending) >= frame_length and not self._stop_event.is_set():
                block, pending = pending[:frame_length], pending[frame_length:]
                try:
                    self.process_frame(block.tolist())
                except Exception:
                    logger.exception("Keyword spotting failed on a frame")

    def _close_model(self) -> None:
        with self._model_lock:
            if self._model_closed:
                return
            self._model_closed = True
        self._model.close()
