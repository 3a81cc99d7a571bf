"""Microphone and audio diagnostics.

Run ``wakesearch-diagnose`` (or ``python diagnostics.py``) when the app cannot
hear you. Purely informational: prints a report and exits.
"""

from __future__ import annotations

import argparse
import importlib.util
import os
import platform
import sys
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from permission_gate import classify_audio_error

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

RULE = "=" * 80
THIN_RULE = "-" * 80
SILENCE_PEAK = 0.01


@dataclass
class CaptureCheck:
    ok: bool
    peak: float = 0.0
    rms: float = 0.0
    error_code: str = ""
    error: str = ""

    @property
    def silent(self) -> bool:
        return self.ok and self.peak < SILENCE_PEAK


def check_backends() -> dict[str, bool]:
    return {
        "sounddevice": sd is not None,
        "dashscope": importlib.util.find_spec("dashscope") is not None,
        "pvporcupine": importlib.util.find_spec("pvporcupine") is not None,
        "pvleopard": importlib.util.find_spec("pvleopard") is not None,
    }


def check_credentials(environ: Optional[dict] = None) -> dict[str, bool]:
    env = os.environ if environ is None else environ
    return {
        name: bool(env.get(name))
        for name in ("PORCUPINE_ACCESS_KEY", "DASHSCOPE_API_KEY", "STT_API_KEY")
    }


def list_input_devices() -> list[dict[str, Any]]:
    if sd is None:
        return []
    devices = []
    for index, info in enumerate(sd.query_devices()):
        if info.get("max_input_channels", 0) <= 0:
            continue
        devices.append(
            {
                "index": index,
                "name": info.get("name", "Microphone"),
                "channels": info.get("max_input_channels", 0),
                "default_samplerate": info.get("default_samplerate", 0),
            }
        )
    return devices


def run_capture_check(seconds: float = 1.0, sample_rate: int = 16000, device: Any = None) -> CaptureCheck:
    if sd is None:
        return CaptureCheck(ok=False, error_code="UNSUPPORTED", error="sounddevice is not installed")
    try:
        recording = sd.rec(
            int(seconds * sample_rate),
            samplerate=sample_rate,
            channels=1,
            dtype="float32",
            device=device,
        )
        sd.wait()
    except Exception as exc:
        return CaptureCheck(ok=False, error_code=classify_audio_error(exc), error=str(exc))
    samples = np.asarray(recording, dtype=np.float32).reshape(-1)
    if samples.size == 0:
        return CaptureCheck(ok=True)
    return CaptureCheck(
        ok=True,
        peak=float(np.max(np.abs(samples))),
        rms=float(np.sqrt(np.mean(np.square(samples)))),
    )


def platform_info() -> dict[str, str]:
    info = {
        "platform": platform.platform(),
        "python": sys.version.split()[0],
        "machine": platform.machine(),
    }
    if sd is not None:
        info["portaudio"] = sd.get_portaudio_version()[1]
    return info


def _mark(ok: bool) -> str:
    return "OK " if ok else "!! "


def run_report(seconds: float, device: Any = None) -> int:
    print(RULE)
    print("MICROPHONE AND AUDIO DIAGNOSTICS")
    print(RULE)

    print("\n1. AUDIO AND RECOGNITION BACKENDS")
    print(THIN_RULE)
    for name, ok in check_backends().items():
        print(f"{_mark(ok)}{name} {'available' if ok else 'NOT available'}")

    print("\n2. CREDENTIALS")
    print(THIN_RULE)
    for name, present in check_credentials().items():
        print(f"{_mark(present)}{name} {'set' if present else 'not set'}")

    print("\n3. AUDIO INPUT DEVICES")
    print(THIN_RULE)
    devices = list_input_devices()
    if not devices:
        print("!! No audio input devices found")
    for number, dev in enumerate(devices, start=1):
        print(f"   {number}. {dev['name']}")
        print(f"      index={dev['index']} channels={dev['channels']} rate={dev['default_samplerate']}")

    print(f"\n4. CAPTURE TEST ({seconds:.1f}s)")
    print(THIN_RULE)
    check = run_capture_check(seconds, device=device)
    if not check.ok:
        print(f"!! Capture failed ({check.error_code}): {check.error}")
    elif check.silent:
        print(f"!! Capture worked but the signal is silent (peak={check.peak:.4f})")
        print("   Check the input volume and that the right device is selected.")
    else:
        print(f"OK Capture worked: peak={check.peak:.4f} rms={check.rms:.4f}")

    print("\n5. PLATFORM")
    print(THIN_RULE)
    for key, value in platform_info().items():
        print(f"   {key}: {value}")
    print(RULE)
    return 0 if check.ok and devices else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Diagnose microphone and audio setup.")
    parser.add_argument("--seconds", type=float, default=1.0, help="Length of the capture test.")
    parser.add_argument("--device", default=None, help="Input device index or name.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    device: Any = args.device
    if isinstance(device, str) and device.isdigit():
        device = int(device)
    return run_report(args.seconds, device=device)


if __name__ == "__main__":
    raise SystemExit(main())
