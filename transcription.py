"""Transcription providers behind a single ``Transcriber`` interface.

Each provider turns a :class:`CaptureResult` into plain text.  A well-formed
2xx response always yields a string (empty when the provider heard nothing);
transport failures raise :class:`ProviderError`.
"""

from __future__ import annotations

import abc
import base64
import logging
from enum import Enum
from typing import Any, Optional

import dashscope
import numpy as np
import pvleopard
import requests

from errors import ProviderError
from models import CaptureResult, TranscriptionConfig
from recognizer import language_hint

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    GOOGLE = "google"
    AZURE = "azure"
    WHISPER = "whisper"
    WATSON = "watson"
    CUSTOM = "custom"
    DASHSCOPE = "dashscope"
    LEOPARD = "leopard"


def dig(data: Any, *path: Any) -> str:
    """Follow ``path`` through nested dicts/lists; "" when anything is missing."""
    node = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(node, list) or len(node) <= key:
                return ""
        elif not isinstance(node, dict) or key not in node:
            return ""
        node = node[key]
    if node is None:
        return ""
    return str(node)


class HttpTranscriber(abc.ABC):
    """Shared request plumbing for the HTTP providers."""

    name = "http"
    default_endpoint = ""

    def __init__(
        self,
        config: TranscriptionConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return (self._config.endpoint or self.default_endpoint).rstrip("/")

    def transcribe(self, audio: CaptureResult) -> str:
        if not self._config.credential:
            raise ProviderError(0, f"{self.name}: no credential configured")
        text = self._transcribe(audio).strip()
        logger.info("%s transcription: %r", self.name, text)
        return text

    def close(self) -> None:
        self._session.close()

    @abc.abstractmethod
    def _transcribe(self, audio: CaptureResult) -> str:
        """Send ``audio`` to the provider and return the raw transcript."""

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            response = self._session.request(
                method, url, timeout=self._config.timeout_s, **kwargs
            )
        except requests.Timeout as exc:
            raise ProviderError(0, f"{self.name}: request timed out") from exc
        except requests.RequestException as exc:
            raise ProviderError(0, f"{self.name}: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise ProviderError(
                response.status_code,
                f"{self.name}: {response.reason or 'error'} {response.text[:200]}".strip(),
            )
        return response

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(response.status_code, f"{self.name}: response is not JSON") from exc


class GoogleTranscriber(HttpTranscriber):
    name = "google"
    default_endpoint = "https://speech.googleapis.com/v1/speech:recognize"

    def _transcribe(self, audio: CaptureResult) -> str:
        encoding = "WEBM_OPUS" if "webm" in audio.encoding else "LINEAR16"
        body = {
            "config": {
                "encoding": encoding,
                "sampleRateHertz": audio.sample_rate,
                "languageCode": self._config.language,
                "model": self._config.model or "latest_long",
            },
            "audio": {"content": base64.b64encode(audio.data).decode("ascii")},
        }
        response = self._request(
            "POST",
            self.endpoint,
            params={"key": self._config.credential},
            json=body,
        )
        return dig(self._json(response), "results", 0, "alternatives", 0, "transcript")


class AzureTranscriber(HttpTranscriber):
    name = "azure"

    @property
    def endpoint(self) -> str:
        if self._config.endpoint:
            return self._config.endpoint.rstrip("/")
        return (
            f"https://{self._config.region}.stt.speech.microsoft.com"
            "/speech/recognition/conversation/cognitiveservices/v1"
        )

    def _transcribe(self, audio: CaptureResult) -> str:
        response = self._request(
            "POST",
            self.endpoint,
            params={"language": self._config.language, "format": "detailed"},
            data=audio.data,
            headers={
                "Ocp-Apim-Subscription-Key": self._config.credential,
                "Content-Type": f"audio/wav; codecs=audio/pcm; samplerate={audio.sample_rate}",
                "Accept": "application/json",
            },
        )
        data = self._json(response)
        return dig(data, "DisplayText") or dig(data, "NBest", 0, "Display")


class WhisperTranscriber(HttpTranscriber):
    name = "whisper"
    default_endpoint = "https://api.openai.com/v1/audio/transcriptions"

    def _transcribe(self, audio: CaptureResult) -> str:
        response = self._request(
            "POST",
            self.endpoint,
            headers={"Authorization": f"Bearer {self._config.credential}"},
            files={"file": ("audio.wav", audio.data, audio.encoding)},
            data={
                "model": self._config.model or "whisper-1",
                "language": language_hint(self._config.language),
            },
        )
        return dig(self._json(response), "text")


class WatsonTranscriber(HttpTranscriber):
    name = "watson"
    default_endpoint = "https://api.us-south.speech-to-text.watson.cloud.ibm.com"

    def _transcribe(self, audio: CaptureResult) -> str:
        token_response = self._request(
            "GET",
            f"{self.endpoint}/v1/authorize",
            params={"api_key": self._config.credential},
        )
        token = token_response.text.strip()
        model = self._config.model or f"{self._config.language}_BroadbandModel"
        response = self._request(
            "POST",
            f"{self.endpoint}/v1/recognize",
            params={"model": model},
            data=audio.data,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": audio.encoding,
            },
        )
        return dig(self._json(response), "results", 0, "alternatives", 0, "transcript")


class CustomTranscriber(HttpTranscriber):
    name = "custom"

    def _transcribe(self, audio: CaptureResult) -> str:
        if not self.endpoint:
            raise ProviderError(0, "custom: no endpoint configured")
        response = self._request(
            "POST",
            self.endpoint,
            headers={"Authorization": f"Bearer {self._config.credential}"},
            files={"audio": ("audio.wav", audio.data, audio.encoding)},
            data={"language": self._config.language},
        )
        data = self._json(response)
        return dig(data, "transcription") or dig(data, "text")


class DashscopeTranscriber:
    """One-shot recognition with DashScope qwen3-asr-flash."""

    name = "dashscope"

    def __init__(self, config: TranscriptionConfig) -> None:
        self._config = config

    def transcribe(self, audio: CaptureResult) -> str:
        if not self._config.credential:
            raise ProviderError(0, "dashscope: no credential configured")
        wav_b64 = base64.b64encode(audio.data).decode("ascii")
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=self._config.credential,
                model=self._config.model or "qwen3-asr-flash",
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": f"data:audio/wav;base64,{wav_b64}"}]},
                ],
                result_format="message",
                asr_options={"language": language_hint(self._config.language), "enable_itn": False},
            )
        except Exception as exc:
            raise ProviderError(0, f"dashscope: {exc}") from exc

        status_code = int(_field(response, "status_code") or 0)
        if status_code != 200:
            message = _field(response, "message") or _field(response, "code") or "request failed"
            raise ProviderError(status_code, f"dashscope: {message}")
        text = self._extract_text(response).strip()
        logger.info("dashscope transcription: %r", text)
        return text

    def _extract_text(self, response: Any) -> str:
        output = _field(response, "output") or {}
        return dig(output, "choices", 0, "message", "content", 0, "text")


class LeopardTranscriber:
    """On-device transcription with Picovoice Leopard."""

    name = "leopard"

    def __init__(self, config: TranscriptionConfig) -> None:
        self._config = config
        self._engine: Any = None

    def transcribe(self, audio: CaptureResult) -> str:
        if not self._config.credential:
            raise ProviderError(0, "leopard: no access key configured")
        try:
            engine = self._ensure_engine()
            pcm = np.frombuffer(audio.pcm16_bytes, dtype=np.int16).tolist()
            transcript, _words = engine.process(pcm)
        except pvleopard.LeopardError as exc:
            raise ProviderError(0, f"leopard: {exc}") from exc
        text = str(transcript or "").strip()
        logger.info("leopard transcription: %r", text)
        return text

    def close(self) -> None:
        if self._engine is not None:
            self._engine.delete()
            self._engine = None

    def _ensure_engine(self) -> Any:
        if self._engine is None:
            kwargs = {"access_key": self._config.credential}
            if self._config.model:
                kwargs["model_path"] = self._config.model
            self._engine = pvleopard.create(**kwargs)
        return self._engine


def _field(response: Any, key: str) -> Any:
    if isinstance(response, dict):
        return response.get(key)
    return getattr(response, key, None)


_HTTP_TRANSCRIBERS = {
    ProviderKind.GOOGLE: GoogleTranscriber,
    ProviderKind.AZURE: AzureTranscriber,
    ProviderKind.WHISPER: WhisperTranscriber,
    ProviderKind.WATSON: WatsonTranscriber,
    ProviderKind.CUSTOM: CustomTranscriber,
}


def create_transcriber(
    config: TranscriptionConfig,
    session: Optional[requests.Session] = None,
) -> Any:
    """Build the transcriber selected by ``config.provider``."""
    try:
        kind = ProviderKind(config.provider.lower())
    except ValueError:
        choices = ", ".join(k.value for k in ProviderKind)
        raise ValueError(f"Unknown STT provider {config.provider!r} (choose from {choices})")
    if kind is ProviderKind.DASHSCOPE:
        return DashscopeTranscriber(config)
    if kind is ProviderKind.LEOPARD:
        return LeopardTranscriber(config)
    return _HTTP_TRANSCRIBERS[kind](config, session=session)
