"""Shared microphone stream with per-consumer tracks."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from queue import Empty, Full, Queue
from typing import Any, Optional

import numpy as np

from models import AudioFrame, now_ms

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

TRACK_LIVE = "live"
TRACK_ENDED = "ended"


@dataclass(frozen=True)
class CaptureConstraints:
    echo_cancellation: bool = False
    noise_suppression: bool = False
    auto_gain_control: bool = False


class Track:
    """One consumer's view of the live stream.

    Frames are copied into a bounded queue; when the consumer falls behind the
    newest frames are dropped and counted.
    """

    def __init__(self, stream: "LiveStream", name: str, maxsize: int = 200) -> None:
        self.name = name
        self.state = TRACK_LIVE
        self.dropped_chunks = 0
        self._stream = stream
        self._queue: Queue[AudioFrame | None] = Queue(maxsize=maxsize)

    def push(self, frame: AudioFrame) -> None:
        if self.state != TRACK_LIVE:
            return
        try:
            self._queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def read(self, timeout: float = 0.2) -> Optional[AudioFrame]:
        """Next frame, or ``None`` on timeout or once the track has ended."""
        if self.state != TRACK_LIVE and self._queue.empty():
            return None
        try:
            return self._queue.get(timeout=timeout)
        except Empty:
            return None

    def stop(self) -> None:
        if self.state == TRACK_ENDED:
            return
        self.state = TRACK_ENDED
        self._stream._remove_track(self)
        try:
            self._queue.put_nowait(None)
        except Full:
            pass


class LiveStream:
    """Raw int16 input stream fanned out read-only to every open track."""

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        block_size: int = 512,
        device: Any = None,
        constraints: CaptureConstraints = CaptureConstraints(),
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = block_size
        self.device = device
        self.constraints = constraints
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._tracks: list[Track] = []
        self._processor_owner: object | None = None

    @property
    def active(self) -> bool:
        return self._running

    @property
    def device_label(self) -> str:
        if sd is None:
            return "unknown"
        try:
            info = sd.query_devices(self.device, kind="input")
        except Exception:
            return "unknown"
        return str(info.get("name", "unknown"))

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=self.block_size,
                device=self.device,
                callback=self._on_audio,
            )
            try:
                self._stream.start()
            except Exception:
                self._stream.close()
                self._stream = None
                raise
            self._running = True
        logger.info("Microphone stream started: %s", self.device_label)

    def close(self) -> None:
        with self._lock:
            tracks = list(self._tracks)
            stream = self._stream
            self._stream = None
            self._running = False
            self._processor_owner = None
        for track in tracks:
            track.stop()
        if stream is not None:
            stream.stop()
            stream.close()
            logger.info("Microphone stream closed")

    def open_track(self, name: str, maxsize: int = 200) -> Track:
        track = Track(self, name, maxsize=maxsize)
        with self._lock:
            if not self._running:
                track.state = TRACK_ENDED
                return track
            self._tracks.append(track)
        return track

    def claim_processor(self, owner: object) -> None:
        """Reserve the single frame-processing slot for ``owner``."""
        with self._lock:
            if self._processor_owner is not None and self._processor_owner is not owner:
                raise RuntimeError("a frame processor is already attached to this stream")
            self._processor_owner = owner

    def release_processor(self, owner: object) -> None:
        with self._lock:
            if self._processor_owner is owner:
                self._processor_owner = None

    def _remove_track(self, track: Track) -> None:
        with self._lock:
            if track in self._tracks:
                self._tracks.remove(track)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running:
            return
        if status:
            logger.debug("Input stream status: %s", status)
        frame = AudioFrame(
            pcm16_bytes=np.asarray(indata, dtype=np.int16).tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=now_ms(),
        )
        with self._lock:
            tracks = list(self._tracks)
        for track in tracks:
            track.push(frame)
