"""Shared error codes, user-facing messages and exceptions."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
DEVICE_BUSY = "DEVICE_BUSY"
INSECURE_CONTEXT = "INSECURE_CONTEXT"
UNSUPPORTED = "UNSUPPORTED"
PROVIDER_ERROR = "PROVIDER_ERROR"
EMPTY_TRANSCRIPTION = "EMPTY_TRANSCRIPTION"
AUDIO_UNAVAILABLE = "AUDIO_UNAVAILABLE"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"
INVALID_ACTIVATION_WORD = "INVALID_ACTIVATION_WORD"
UNKNOWN = "UNKNOWN"

ERROR_MESSAGES = {
    PERMISSION_DENIED: (
        "Microphone access was denied. The app cannot listen without it. "
        "Allow microphone access in your system privacy settings and try again."
    ),
    DEVICE_NOT_FOUND: "No microphone was found. Check that it is connected.",
    DEVICE_BUSY: "The microphone is being used by another application.",
    INSECURE_CONTEXT: (
        "The system blocked microphone access for this process. "
        "Run the app outside the sandbox or grant it audio access."
    ),
    UNSUPPORTED: (
        "Audio capture is not supported here. "
        "Install PortAudio and the sounddevice package."
    ),
    PROVIDER_ERROR: "Could not transcribe the audio. Please retry.",
    EMPTY_TRANSCRIPTION: "Could not understand clearly. Try again.",
    AUDIO_UNAVAILABLE: "No audio stream is available. Enable the microphone first.",
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
    INVALID_ACTIVATION_WORD: "Please enter a valid activation word.",
    UNKNOWN: "Unknown error. Check the microphone, other apps using it, and system permissions.",
}


def message_for(code: str) -> str:
    return ERROR_MESSAGES.get(code, ERROR_MESSAGES[UNKNOWN])


class ProviderError(Exception):
    """Transport-level failure of a transcription provider.

    ``status_code`` is the HTTP status, or 0 when the request never produced one
    (connection failure, timeout, SDK error).
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"[{status_code}] {message}")


class AudioUnavailableError(RuntimeError):
    """Raised when a capture is requested without an active live stream."""
