"""Bounded-duration audio capture from the live stream."""

from __future__ import annotations

import io
import logging
import time
import wave
from typing import Callable

from errors import AudioUnavailableError
from models import CaptureResult, SessionContext

logger = logging.getLogger(__name__)

DEFAULT_CAPTURE_MS = 5000


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap raw PCM bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


class AudioCapture:
    def __init__(
        self,
        session: SessionContext,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._clock = clock

    def capture(self, duration_ms: int = DEFAULT_CAPTURE_MS) -> CaptureResult:
        """Record ``duration_ms`` of audio and return it as one WAV buffer.

        The capture track is always ended before this returns or raises.
        """
        stream = self._session.live_stream
        if stream is None or not getattr(stream, "active", False):
            raise AudioUnavailableError("no active microphone stream")

        track = stream.open_track("capture")
        chunks: list[bytes] = []
        sample_rate = stream.sample_rate
        channels = stream.channels
        try:
            deadline = self._clock() + duration_ms / 1000.0
            remaining = deadline - self._clock()
            while remaining > 0:
                frame = track.read(timeout=min(remaining, 0.1))
                if frame is not None:
                    chunks.append(frame.pcm16_bytes)
                    sample_rate = frame.sample_rate
                    channels = frame.channels
                remaining = deadline - self._clock()
        finally:
            track.stop()

        pcm = b"".join(chunks)
        result = CaptureResult(
            data=pcm_to_wav(pcm, sample_rate, channels),
            encoding="audio/wav",
            sample_rate=sample_rate,
            channels=channels,
            pcm16_bytes=pcm,
        )
        logger.info("Captured %.2f KB of audio", result.byte_length / 1024)
        return result
