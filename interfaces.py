"""Protocol interfaces used by the activation pipeline."""

from __future__ import annotations

from typing import Callable, Protocol, Sequence

from models import CaptureResult, RecognitionEvent


class ConsentPrompt(Protocol):
    def ask(self) -> bool: ...


class StreamingRecognizer(Protocol):
    def start(
        self,
        on_event: Callable[[RecognitionEvent], None],
        on_end: Callable[[], None],
    ) -> None: ...

    def send(self, pcm16_bytes: bytes) -> None: ...

    def stop(self) -> None: ...


class KeywordModel(Protocol):
    frame_length: int
    sample_rate: int

    def score(self, pcm: Sequence[int]) -> float: ...

    def close(self) -> None: ...


class Transcriber(Protocol):
    def transcribe(self, audio: CaptureResult) -> str: ...


class ContentSurface(Protocol):
    def load(self, url: str) -> None: ...

    def page_loaded(self) -> bool: ...

    def click_first(self, selector: str) -> bool: ...


class ConfigStore(Protocol):
    def get_activation_word(self, default: str = "") -> str: ...

    def set_activation_word(self, word: str) -> None: ...

    def get_language(self, default: str = "") -> str: ...
