"""Short two-tone confirmation sound."""

from __future__ import annotations

import numpy as np

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore


def activation_tone(sample_rate: int = 44100, gain: float = 0.1) -> np.ndarray:
    """800 Hz then 1000 Hz, 100 ms each."""
    half = int(sample_rate * 0.1)
    t = np.arange(half) / sample_rate
    tone = np.concatenate([np.sin(2 * np.pi * 800 * t), np.sin(2 * np.pi * 1000 * t)])
    return (gain * tone).astype(np.float32)


def play_activation_tone(sample_rate: int = 44100) -> None:
    if sd is None:
        raise RuntimeError("sounddevice is not installed")
    sd.play(activation_tone(sample_rate), samplerate=sample_rate, blocking=False)
