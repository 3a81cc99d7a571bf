from __future__ import annotations

import threading
import time
from typing import Callable
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from microphone import LiveStream
from models import ActivationEvent, ActivationSource, SessionContext, TranscriptEvent
from wake_word import (
    KeywordSpotter,
    PhraseMatchDetector,
    PorcupineKeywordModel,
    contains_activation_word,
)


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeModel:
    frame_length = 4
    sample_rate = 16000

    def __init__(self, score: float = 0.0) -> None:
        self.next_score = score
        self.frames: list[list[int]] = []
        self.closed = False

    def score(self, pcm) -> float:  # noqa: ANN001
        self.frames.append(list(pcm))
        return self.next_score

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------
# Phrase matching
# ---------------------------------------------------------------

@pytest.mark.parametrize(
    ("transcript", "word", "expected"),
    [
        ("hola como estas", "hola", True),
        ("  HOLA como estas ", " Hola ", True),
        ("dije ¡hola!", "hola", True),
        ("buenos dias", "hola", False),
        ("hola", "", False),
        ("hola", "   ", False),
    ],
)
def test_contains_activation_word(transcript: str, word: str, expected: bool) -> None:
    assert contains_activation_word(transcript, word) is expected


def test_final_transcript_with_word_raises_activation() -> None:
    session = SessionContext(activation_word="hola")
    activations: list[ActivationEvent] = []
    detector = PhraseMatchDetector(session, activations.append)

    assert detector.handle(TranscriptEvent(text=" Hola como estas ", is_final=True)) is True

    assert len(activations) == 1
    assert activations[0].source is ActivationSource.PHRASE_MATCH
    assert activations[0].text == "Hola como estas"


def test_interim_transcript_never_activates() -> None:
    session = SessionContext(activation_word="hola")
    activations: list[ActivationEvent] = []
    detector = PhraseMatchDetector(session, activations.append)

    assert detector.handle(TranscriptEvent(text="hola", is_final=False)) is False
    assert activations == []


def test_activation_word_change_applies_to_next_event() -> None:
    session = SessionContext(activation_word="hola")
    activations: list[ActivationEvent] = []
    detector = PhraseMatchDetector(session, activations.append)

    session.activation_word = "oye"
    detector.handle(TranscriptEvent(text="hola musica", is_final=True))
    detector.handle(TranscriptEvent(text="oye musica", is_final=True))

    assert [a.text for a in activations] == ["oye musica"]


def test_run_survives_callback_errors() -> None:
    session = SessionContext(activation_word="hola")
    calls: list[str] = []

    def on_activation(event: ActivationEvent) -> None:
        calls.append(event.text)
        if len(calls) == 1:
            raise RuntimeError("boom")

    detector = PhraseMatchDetector(session, on_activation)
    detector.run(
        [
            TranscriptEvent(text="hola uno", is_final=True),
            TranscriptEvent(text="hola dos", is_final=True),
        ]
    )

    assert calls == ["hola uno", "hola dos"]


# ---------------------------------------------------------------
# Keyword spotter
# ---------------------------------------------------------------

def test_score_at_threshold_raises_activation() -> None:
    activations: list[ActivationEvent] = []
    spotter = KeywordSpotter(SessionContext(), FakeModel(score=0.9), activations.append, threshold=0.7)

    assert spotter.process_frame([0, 0, 0, 0]) is True

    assert activations[0].source is ActivationSource.KEYWORD_SPOTTER
    assert activations[0].confidence == 0.9


def test_score_below_threshold_is_ignored() -> None:
    activations: list[ActivationEvent] = []
    spotter = KeywordSpotter(SessionContext(), FakeModel(score=0.5), activations.append, threshold=0.7)

    assert spotter.process_frame([0, 0, 0, 0]) is False
    assert activations == []


@pytest.mark.parametrize("threshold", [-0.1, 1.1])
def test_threshold_out_of_range_is_rejected(threshold: float) -> None:
    with pytest.raises(ValueError):
        KeywordSpotter(SessionContext(), FakeModel(), lambda e: None, threshold=threshold)


@patch("microphone.sd")
def test_worker_reblocks_audio_to_model_frame_length(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    stream = LiveStream()
    stream.start()
    session = SessionContext()
    session.attach_stream(stream)
    model = FakeModel(score=0.0)
    spotter = KeywordSpotter(session, model, lambda e: None)

    spotter.start()
    stream._on_audio(np.arange(6, dtype=np.int16).reshape(-1, 1), 6, None, None)
    stream._on_audio(np.arange(6, 8, dtype=np.int16).reshape(-1, 1), 2, None, None)

    assert wait_until(lambda: len(model.frames) == 2)
    spotter.close()
    stream.close()

    assert model.frames == [[0, 1, 2, 3], [4, 5, 6, 7]]
    assert model.closed is True


class BlockingModel(FakeModel):
    """Holds the worker inside ``score`` until released."""

    def __init__(self) -> None:
        super().__init__()
        self.scoring = threading.Event()
        self.release = threading.Event()
        self.scored_after_close = False

    def score(self, pcm) -> float:  # noqa: ANN001
        self.scoring.set()
        self.release.wait(timeout=5.0)
        if self.closed:
            self.scored_after_close = True
        return super().score(pcm)


@patch("microphone.sd")
def test_model_outlives_a_worker_still_scoring(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    stream = LiveStream()
    stream.start()
    session = SessionContext()
    session.attach_stream(stream)
    model = BlockingModel()
    spotter = KeywordSpotter(session, model, lambda e: None)

    spotter.start()
    stream._on_audio(np.arange(8, dtype=np.int16).reshape(-1, 1), 8, None, None)
    assert model.scoring.wait(timeout=2.0)

    spotter.close()
    assert model.closed is False

    model.release.set()
    assert wait_until(lambda: model.closed)
    stream.close()

    assert model.scored_after_close is False
    assert len(model.frames) == 1


@patch("microphone.sd")
def test_second_spotter_cannot_claim_stream(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    stream = LiveStream()
    stream.start()
    session = SessionContext()
    session.attach_stream(stream)

    first = KeywordSpotter(session, FakeModel(), lambda e: None)
    second = KeywordSpotter(session, FakeModel(), lambda e: None)
    first.start()
    with pytest.raises(RuntimeError):
        second.start()

    first.stop()
    second.start()
    second.stop()
    stream.close()


def test_spotter_requires_active_microphone() -> None:
    spotter = KeywordSpotter(SessionContext(), FakeModel(), lambda e: None)
    with pytest.raises(RuntimeError, match="microphone"):
        spotter.start()


# ---------------------------------------------------------------
# Porcupine adapter
# ---------------------------------------------------------------

@patch("wake_word.pvporcupine")
def test_porcupine_model_scores_detections(mock_pv: MagicMock) -> None:
    engine = MagicMock(frame_length=512, sample_rate=16000)
    engine.process.side_effect = [-1, 0]
    mock_pv.create.return_value = engine

    model = PorcupineKeywordModel(access_key="pv-key", keyword="porcupine", sensitivity=0.6)

    mock_pv.create.assert_called_once_with(
        access_key="pv-key", keywords=["porcupine"], sensitivities=[0.6]
    )
    assert model.frame_length == 512
    assert model.score([0] * 512) == 0.0
    assert model.score([0] * 512) == 1.0

    model.close()
    model.close()
    engine.delete.assert_called_once()


@patch("wake_word.pvporcupine")
def test_porcupine_model_uses_custom_keyword_file(mock_pv: MagicMock) -> None:
    mock_pv.create.return_value = MagicMock(frame_length=512, sample_rate=16000)

    PorcupineKeywordModel(access_key="pv-key", keyword_path="/tmp/hola.ppn")

    kwargs = mock_pv.create.call_args.kwargs
    assert kwargs["keyword_paths"] == ["/tmp/hola.ppn"]
    assert "keywords" not in kwargs


def test_porcupine_model_requires_access_key() -> None:
    with pytest.raises(ValueError, match="access key"):
        PorcupineKeywordModel(access_key="")
