"""Environment configuration and a simple JSON preferences store."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from interfaces import ConfigStore
from models import TranscriptionConfig, WakeStrategy

DEFAULT_ACTIVATION_WORD = "hola"
DEFAULT_LANGUAGE = "es-ES"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "wakesearch" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_activation_word(self, default: str = "") -> str:
        data = self._read_all()
        return str(data.get("activation_word", default))

    def set_activation_word(self, word: str) -> None:
        data = self._read_all()
        data["activation_word"] = word
        self._write_all(data)

    def get_language(self, default: str = "") -> str:
        data = self._read_all()
        return str(data.get("language", default))

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def load_env_files() -> None:
    """Load .env files from the working directory and the app directory."""
    candidates = [Path.cwd() / ".env", Path(__file__).resolve().parent / ".env"]
    if getattr(sys, "frozen", False):
        candidates.append(Path(sys.executable).resolve().parent / ".env")
    for path in candidates:
        if path.exists():
            load_dotenv(dotenv_path=str(path), override=False)


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    return int(_float(env, name, float(default)))


@dataclass(frozen=True)
class AppConfig:
    """Read-only startup configuration. Credentials only ever come from here."""

    porcupine_access_key: str = ""
    activation_word: str = DEFAULT_ACTIVATION_WORD
    wake_strategy: WakeStrategy = WakeStrategy.PHRASE_MATCH
    keyword: str = "porcupine"
    keyword_path: Optional[str] = None
    sensitivity: float = 0.7
    language: str = DEFAULT_LANGUAGE
    dashscope_api_key: str = ""
    recognition_model: str = "paraformer-realtime-v2"
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    capture_ms: int = 5000
    cooldown_ms: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        store: Optional[ConfigStore] = None,
    ) -> "AppConfig":
        env = os.environ if environ is None else environ

        activation_word = env.get("ACTIVATION_WORD", "").strip() or DEFAULT_ACTIVATION_WORD
        language = env.get("RECOGNITION_LANGUAGE", "").strip() or DEFAULT_LANGUAGE
        if store is not None:
            activation_word = store.get_activation_word(activation_word).strip() or activation_word
            language = store.get_language(language).strip() or language

        raw_strategy = env.get("WAKE_STRATEGY", "").strip().lower() or WakeStrategy.PHRASE_MATCH.value
        try:
            strategy = WakeStrategy(raw_strategy)
        except ValueError as exc:
            choices = ", ".join(s.value for s in WakeStrategy)
            raise ValueError(f"WAKE_STRATEGY must be one of {choices}, got {raw_strategy!r}") from exc

        sensitivity = _float(env, "WAKE_SENSITIVITY", 0.7)
        if not 0.0 <= sensitivity <= 1.0:
            raise ValueError(f"WAKE_SENSITIVITY must be within [0.0, 1.0], got {sensitivity}")

        dashscope_key = env.get("DASHSCOPE_API_KEY", "")
        provider = env.get("STT_PROVIDER", "").strip().lower() or "whisper"
        credential = env.get("STT_API_KEY", "")
        if not credential and provider == "dashscope":
            credential = dashscope_key
        if not credential and provider == "leopard":
            credential = env.get("PORCUPINE_ACCESS_KEY", "")

        transcription = TranscriptionConfig(
            provider=provider,
            credential=credential,
            endpoint=env.get("STT_ENDPOINT", "").strip(),
            language=language,
            model=env.get("STT_MODEL", "").strip(),
            region=env.get("STT_REGION", "").strip() or "eastus",
            timeout_s=_float(env, "STT_TIMEOUT_S", 30.0),
        )

        return cls(
            porcupine_access_key=env.get("PORCUPINE_ACCESS_KEY", ""),
            activation_word=activation_word,
            wake_strategy=strategy,
            keyword=env.get("PORCUPINE_KEYWORD", "").strip() or "porcupine",
            keyword_path=env.get("PORCUPINE_KEYWORD_PATH", "").strip() or None,
            sensitivity=sensitivity,
            language=language,
            dashscope_api_key=dashscope_key,
            recognition_model=env.get("RECOGNITION_MODEL", "").strip() or "paraformer-realtime-v2",
            transcription=transcription,
            capture_ms=_int(env, "CAPTURE_MS", 5000),
            cooldown_ms=_int(env, "COOLDOWN_MS", 3000),
            log_level=env.get("LOG_LEVEL", "").strip().upper() or "INFO",
        )
