from __future__ import annotations

import itertools
import time
from typing import Callable

from errors import ASR_PROTOCOL_ERROR, AUTH_FAILED, NETWORK_ERROR
from listener import ContinuousListener
from models import AudioFrame, RecognitionEvent, RecognitionKind, SessionContext


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeTrack:
    def __init__(self, frames: list[AudioFrame] | None = None) -> None:
        self._frames = list(frames or [])
        self.state = "live"

    def read(self, timeout: float = 0.2) -> AudioFrame | None:
        if self._frames and self.state == "live":
            return self._frames.pop(0)
        time.sleep(0.01)
        return None

    def stop(self) -> None:
        self.state = "ended"


class FakeStream:
    active = True

    def __init__(self, frames: list[AudioFrame] | None = None) -> None:
        self.track = FakeTrack(frames)

    def open_track(self, name: str) -> FakeTrack:
        return self.track


class FakeRecognizer:
    def __init__(self, start_failures: int = 0, start_error: Exception | None = None) -> None:
        self.start_calls = 0
        self.stop_calls = 0
        self.sent: list[bytes] = []
        self._start_failures = start_failures
        self._start_error = start_error
        self.on_event = None
        self.on_end = None

    def start(self, on_event, on_end) -> None:  # noqa: ANN001
        self.start_calls += 1
        if self._start_error is not None:
            raise self._start_error
        if self._start_failures > 0:
            self._start_failures -= 1
            raise RuntimeError("recognition already started")
        self.on_event = on_event
        self.on_end = on_end

    def send(self, pcm16_bytes: bytes) -> None:
        self.sent.append(pcm16_bytes)

    def stop(self) -> None:
        self.stop_calls += 1


def _make_listener(recognizer: FakeRecognizer, frames: list[AudioFrame] | None = None):
    session = SessionContext()
    session.attach_stream(FakeStream(frames))
    notices: list[tuple[str, str]] = []
    listener = ContinuousListener(
        session,
        recognizer,
        restart_delay_s=0.01,
        on_notice=lambda code, msg: notices.append((code, msg)),
    )
    return listener, session, notices


def test_start_requires_active_microphone() -> None:
    listener = ContinuousListener(SessionContext(), FakeRecognizer())
    try:
        listener.start()
    except RuntimeError as exc:
        assert "microphone" in str(exc)
    else:
        raise AssertionError("start() should fail without a live stream")


def test_audio_frames_reach_recognizer() -> None:
    frames = [AudioFrame(b"\x01\x00" * 4), AudioFrame(b"\x02\x00" * 4)]
    recognizer = FakeRecognizer()
    listener, _, _ = _make_listener(recognizer, frames)

    listener.start()
    assert wait_until(lambda: len(recognizer.sent) == 2)
    listener.stop()

    assert recognizer.sent == [b"\x01\x00" * 4, b"\x02\x00" * 4]


def test_events_preserve_order_and_result_index() -> None:
    recognizer = FakeRecognizer()
    listener, _, _ = _make_listener(recognizer)
    listener.start()
    assert wait_until(lambda: recognizer.on_event is not None)

    recognizer.on_event(RecognitionEvent(kind=RecognitionKind.PARTIAL.value, text="ho"))
    recognizer.on_event(RecognitionEvent(kind=RecognitionKind.FINAL.value, text="hola"))
    recognizer.on_event(RecognitionEvent(kind=RecognitionKind.PARTIAL.value, text="como"))
    recognizer.on_event(RecognitionEvent(kind=RecognitionKind.FINAL.value, text="como estas"))

    events = list(itertools.islice(listener.events(), 4))
    listener.stop()

    assert [e.text for e in events] == ["ho", "hola", "como", "como estas"]
    assert [e.is_final for e in events] == [False, True, False, True]
    assert [e.result_index for e in events] == [0, 0, 1, 1]


def test_transient_errors_are_absorbed() -> None:
    recognizer = FakeRecognizer()
    listener, _, notices = _make_listener(recognizer)
    listener.start()
    assert wait_until(lambda: recognizer.on_event is not None)

    recognizer.on_event(
        RecognitionEvent(kind="error", code=NETWORK_ERROR, message="no-speech", retryable=True)
    )
    recognizer.on_event(
        RecognitionEvent(kind="error", code=ASR_PROTOCOL_ERROR, message="aborted", retryable=True)
    )
    recognizer.on_event(RecognitionEvent(kind="final", text="hola"))

    event = next(listener.events())
    assert listener.running is True
    listener.stop()

    assert event.text == "hola"
    assert notices == []


def test_session_end_restarts_recognition() -> None:
    recognizer = FakeRecognizer()
    listener, _, _ = _make_listener(recognizer)
    listener.start()
    assert wait_until(lambda: recognizer.start_calls == 1)

    recognizer.on_end()

    assert wait_until(lambda: recognizer.start_calls == 2)
    listener.stop()


def test_failed_restart_is_retried() -> None:
    recognizer = FakeRecognizer(start_failures=2)
    listener, _, _ = _make_listener(recognizer)

    listener.start()

    assert wait_until(lambda: recognizer.start_calls == 3)
    assert listener.running is True
    listener.stop()


def test_no_restart_after_listening_stops() -> None:
    recognizer = FakeRecognizer()
    listener, session, _ = _make_listener(recognizer)
    listener.start()
    assert wait_until(lambda: recognizer.start_calls == 1)

    session.is_listening = False
    recognizer.on_end()
    time.sleep(0.1)

    assert recognizer.start_calls == 1
    assert list(listener.events()) == []
    listener.stop()


def test_auth_failure_stops_restarts_and_notifies() -> None:
    recognizer = FakeRecognizer()
    listener, _, notices = _make_listener(recognizer)
    listener.start()
    assert wait_until(lambda: recognizer.on_event is not None)

    recognizer.on_event(
        RecognitionEvent(kind="error", code=AUTH_FAILED, message="401", retryable=False)
    )
    recognizer.on_end()
    time.sleep(0.1)

    assert recognizer.start_calls == 1
    assert [code for code, _ in notices] == [AUTH_FAILED]
    listener.stop()


def test_stop_is_idempotent_and_ends_events() -> None:
    recognizer = FakeRecognizer()
    listener, session, _ = _make_listener(recognizer)
    listener.start()

    listener.stop()
    listener.stop()

    assert recognizer.stop_calls == 1
    assert session.live_stream.track.state == "ended"
    assert list(listener.events()) == []


def test_missing_api_key_is_not_retried() -> None:
    recognizer = FakeRecognizer(start_error=ValueError("No DashScope API key configured"))
    listener, _, notices = _make_listener(recognizer)

    listener.start()
    assert wait_until(lambda: recognizer.start_calls == 1)
    time.sleep(0.1)

    assert recognizer.start_calls == 1
    assert [code for code, _ in notices] == [AUTH_FAILED]
    listener.stop()
