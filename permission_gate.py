"""Microphone consent and stream acquisition."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

from errors import (
    DEVICE_BUSY,
    DEVICE_NOT_FOUND,
    INSECURE_CONTEXT,
    PERMISSION_DENIED,
    UNKNOWN,
    UNSUPPORTED,
    message_for,
)
from interfaces import ConsentPrompt
from microphone import LiveStream
from models import SessionContext

logger = logging.getLogger(__name__)

NoticeCallback = Callable[[str, str], None]

# Markers matched against PortAudio / OS error text, checked in order.
_ERROR_MARKERS = (
    (UNSUPPORTED, ("not installed", "portaudio library not found", "not supported")),
    (PERMISSION_DENIED, ("permission", "not permitted", "access denied", "not authorized")),
    (INSECURE_CONTEXT, ("security", "sandbox", "insecure")),
    (DEVICE_BUSY, ("device unavailable", "busy", "in use", "-9985", "resource temporarily")),
    (DEVICE_NOT_FOUND, (
        "no default input",
        "invalid device",
        "error querying device",
        "no such device",
        "no input device",
        "-9996",
        "-9998",
    )),
)


def classify_audio_error(exc: BaseException) -> str:
    """Map a stream acquisition failure to one of the microphone error codes."""
    if isinstance(exc, PermissionError):
        return PERMISSION_DENIED
    low = str(exc).lower()
    for code, markers in _ERROR_MARKERS:
        if any(marker in low for marker in markers):
            return code
    return UNKNOWN


class PermissionGate:
    def __init__(
        self,
        session: SessionContext,
        prompt: ConsentPrompt,
        stream_factory: Callable[[], Any] = LiveStream,
        on_notice: Optional[NoticeCallback] = None,
    ) -> None:
        self._session = session
        self._prompt = prompt
        self._stream_factory = stream_factory
        self._on_notice = on_notice
        self._lock = threading.Lock()
        self._pending: Optional[Future[bool]] = None

    def request_permission(self) -> bool:
        """Ask for consent and open the live stream.

        Concurrent callers share the request already in flight instead of
        showing a second prompt. Never raises.
        """
        with self._lock:
            pending = self._pending
            if pending is None:
                pending = Future()
                self._pending = pending
                owner = True
            else:
                owner = False

        if not owner:
            return pending.result()

        granted = False
        try:
            granted = self._run_flow()
        except Exception:
            logger.exception("Permission flow failed")
            granted = False
        finally:
            with self._lock:
                self._pending = None
            pending.set_result(granted)
        return granted

    def revoke(self) -> None:
        """Stop listening and release the stream. Safe to call repeatedly."""
        stream = self._session.detach_stream()
        if stream is None:
            return
        try:
            stream.close()
        except Exception:
            logger.exception("Failed to close microphone stream")
        logger.info("Microphone released")

    def _run_flow(self) -> bool:
        current = self._session.live_stream
        if current is not None and getattr(current, "active", False):
            self._session.is_listening = True
            return True

        logger.info("Showing microphone consent prompt")
        if not self._prompt.ask():
            logger.info("User denied microphone access")
            self._session.microphone_permitted = False
            self._emit_notice(PERMISSION_DENIED)
            return False

        stream = None
        try:
            stream = self._stream_factory()
            stream.start()
        except Exception as exc:
            code = classify_audio_error(exc)
            logger.error("Could not open microphone (%s): %s", code, exc)
            if stream is not None:
                try:
                    stream.close()
                except Exception:
                    logger.debug("Closing failed stream raised", exc_info=True)
            self._session.microphone_permitted = False
            self._emit_notice(code)
            return False

        self._session.attach_stream(stream)
        logger.info("Microphone ready: %s", getattr(stream, "device_label", "unknown"))
        return True

    def _emit_notice(self, code: str) -> None:
        if self._on_notice:
            self._on_notice(code, message_for(code))
