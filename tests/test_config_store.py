from __future__ import annotations

import json
from pathlib import Path

import pytest

from config import AppConfig, JsonConfigStore
from models import WakeStrategy


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_activation_word() == ""
    assert store.get_activation_word("hola") == "hola"
    assert store.get_language("es-ES") == "es-ES"

    path.write_text(json.dumps({"language": "en-US"}), encoding="utf-8")
    store.set_activation_word("oye")

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_activation_word("hola") == "oye"
    assert reloaded.get_language("es-ES") == "en-US"


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_activation_word("hola") == "hola"
    assert store.get_language("es-ES") == "es-ES"


def test_app_config_defaults_from_empty_environment() -> None:
    config = AppConfig.from_env(environ={})

    assert config.activation_word == "hola"
    assert config.wake_strategy is WakeStrategy.PHRASE_MATCH
    assert config.sensitivity == 0.7
    assert config.language == "es-ES"
    assert config.capture_ms == 5000
    assert config.cooldown_ms == 3000
    assert config.porcupine_access_key == ""
    assert config.transcription.provider == "whisper"
    assert config.transcription.credential == ""


def test_app_config_reads_environment() -> None:
    config = AppConfig.from_env(
        environ={
            "PORCUPINE_ACCESS_KEY": "pv-key",
            "ACTIVATION_WORD": "Oye",
            "WAKE_STRATEGY": "keyword-spotter",
            "WAKE_SENSITIVITY": "0.55",
            "STT_PROVIDER": "Google",
            "STT_API_KEY": "g-key",
            "STT_TIMEOUT_S": "12",
            "RECOGNITION_LANGUAGE": "en-US",
            "LOG_LEVEL": "debug",
        }
    )

    assert config.porcupine_access_key == "pv-key"
    assert config.activation_word == "Oye"
    assert config.wake_strategy is WakeStrategy.KEYWORD_SPOTTER
    assert config.sensitivity == 0.55
    assert config.transcription.provider == "google"
    assert config.transcription.credential == "g-key"
    assert config.transcription.timeout_s == 12.0
    assert config.transcription.language == "en-US"
    assert config.log_level == "DEBUG"


def test_saved_activation_word_overrides_environment(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set_activation_word("mani")

    config = AppConfig.from_env(environ={"ACTIVATION_WORD": "hola"}, store=store)
    assert config.activation_word == "mani"


def test_dashscope_provider_falls_back_to_dashscope_key() -> None:
    config = AppConfig.from_env(
        environ={"STT_PROVIDER": "dashscope", "DASHSCOPE_API_KEY": "ds-key"}
    )
    assert config.transcription.credential == "ds-key"


def test_invalid_sensitivity_is_rejected() -> None:
    with pytest.raises(ValueError, match="WAKE_SENSITIVITY"):
        AppConfig.from_env(environ={"WAKE_SENSITIVITY": "1.5"})


def test_invalid_strategy_is_rejected() -> None:
    with pytest.raises(ValueError, match="WAKE_STRATEGY"):
        AppConfig.from_env(environ={"WAKE_STRATEGY": "both"})
