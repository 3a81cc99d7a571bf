"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Optional

from activation_controller import ActivationController
from capture import AudioCapture
from chime import play_activation_tone
from config import AppConfig, JsonConfigStore, load_env_files
from errors import INVALID_ACTIVATION_WORD, UNKNOWN, message_for
from listener import ContinuousListener
from logging_setup import setup_logging
from models import ActivationPath, ActivationState, SessionContext, WakeStrategy
from permission_gate import PermissionGate
from recognizer import DashscopeStreamingRecognizer
from search_executor import SearchExecutor
from transcription import create_transcriber
from wake_word import KeywordSpotter, PhraseMatchDetector, PorcupineKeywordModel

try:
    from PySide6.QtCore import QObject, QTimer, Signal
    from PySide6.QtWidgets import QApplication

    from main_window import MainWindow, QtConsentPrompt, WebViewSurface
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 with QtWebEngine is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


class UIBridge(QObject):
    notice_signal = Signal(str)
    state_signal = Signal(str, str)  # from_state, to_state
    text_signal = Signal(str)


class App:
    def __init__(self) -> None:
        load_env_files()
        self.config_store = JsonConfigStore()
        self.config = AppConfig.from_env(store=self.config_store)
        setup_logging(level=self.config.log_level)

        self.app = QApplication(sys.argv)
        self.session = SessionContext(activation_word=self.config.activation_word)
        self.window = MainWindow(activation_word=self.config.activation_word)
        self.ui = UIBridge()
        self.ui.notice_signal.connect(self.window.show_notice)
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.text_signal.connect(self.window.set_search_text)

        self.search = SearchExecutor(WebViewSurface(self.window.web_view))
        self.gate = PermissionGate(
            session=self.session,
            prompt=QtConsentPrompt(self.window),
            on_notice=self._on_notice,
        )
        self.controller = self._build_controller()

        self.listener: Optional[ContinuousListener] = None
        self.spotter: Optional[KeywordSpotter] = None

        self.window.search_requested.connect(self._on_manual_search)
        self.window.activation_word_submitted.connect(self._on_activation_word)
        self.window.mic_toggled.connect(self._on_mic_toggle)
        self.app.aboutToQuit.connect(self.shutdown)

    def _build_controller(self) -> ActivationController:
        common = dict(
            search=self.search.search,
            capture_ms=self.config.capture_ms,
            cooldown_s=self.config.cooldown_ms / 1000.0,
            chime=play_activation_tone,
            on_state_change=self._on_state_change,
            on_notice=self._on_notice,
            on_text=self.ui.text_signal.emit,
        )
        if self.config.wake_strategy is WakeStrategy.KEYWORD_SPOTTER:
            return ActivationController(
                path=ActivationPath.RECORD_AND_DISPATCH,
                capture=AudioCapture(self.session),
                transcriber=create_transcriber(self.config.transcription),
                **common,
            )
        return ActivationController(path=ActivationPath.PHRASE_MATCH, **common)

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: ActivationState, to_state: ActivationState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _on_notice(self, code: str, message: str) -> None:
        logger.info("Notice %s: %s", code, message)
        self.ui.notice_signal.emit(message)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        if to_state == ActivationState.ACTIVATING.value:
            self.window.set_active(True)
        elif to_state == ActivationState.IDLE.value:
            self.window.set_active(False)

    def _on_manual_search(self, text: str) -> None:
        # The executor polls the page; keep that off the Qt main thread.
        threading.Thread(target=self.search.search, args=(text,), daemon=True).start()

    def _on_activation_word(self, word: str) -> None:
        word = word.strip()
        if not word:
            self.window.show_notice(message_for(INVALID_ACTIVATION_WORD))
            return
        self.session.activation_word = word
        self.config_store.set_activation_word(word)
        self.window.set_activation_word(word)
        logger.info("Activation word updated to %r", word)
        self.window.show_info(f'Activation word updated to: "{word}"')

    def _on_mic_toggle(self) -> None:
        if self.session.is_listening:
            self._stop_detection()
            self.gate.revoke()
            self.window.set_listening(False)
            return
        if not self.gate.request_permission():
            self.window.set_listening(False)
            return
        try:
            self._start_detection()
        except Exception as exc:
            logger.exception("Could not start wake-word detection")
            self._stop_detection()
            self.gate.revoke()
            self.window.set_listening(False)
            self.window.show_notice(f"{message_for(UNKNOWN)}\n\n{exc}")
            return
        self.window.set_listening(True)

    # ------------------------------------------------------------------
    # Wake-word wiring
    # ------------------------------------------------------------------

    def _start_detection(self) -> None:
        if self.config.wake_strategy is WakeStrategy.KEYWORD_SPOTTER:
            model = PorcupineKeywordModel(
                access_key=self.config.porcupine_access_key,
                keyword=self.config.keyword,
                keyword_path=self.config.keyword_path,
                sensitivity=self.config.sensitivity,
            )
            self.spotter = KeywordSpotter(
                self.session,
                model,
                self.controller.handle_activation,
                threshold=self.config.sensitivity,
            )
            self.spotter.start()
            return

        if not self.config.dashscope_api_key:
            raise ValueError("DASHSCOPE_API_KEY is required for phrase matching")
        recognizer = DashscopeStreamingRecognizer(
            api_key=self.config.dashscope_api_key,
            model=self.config.recognition_model,
            language=self.config.language,
        )
        self.listener = ContinuousListener(self.session, recognizer, on_notice=self._on_notice)
        self.listener.start()
        detector = PhraseMatchDetector(self.session, self.controller.handle_activation)
        threading.Thread(
            target=detector.run,
            args=(self.listener.events(),),
            name="phrase-match",
            daemon=True,
        ).start()

    def _stop_detection(self) -> None:
        if self.listener is not None:
            self.listener.stop()
            self.listener = None
        if self.spotter is not None:
            self.spotter.close()
            self.spotter = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.window.show()
        QTimer.singleShot(0, self._on_mic_toggle)
        return self.app.exec()

    def shutdown(self) -> None:
        self._stop_detection()
        self.controller.shutdown()
        self.gate.revoke()


def main() -> int:
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
