"""Main window: search bar, activation word editor and embedded web view."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any

from PySide6.QtCore import QObject, QThread, QUrl, Signal
from PySide6.QtWebEngineWidgets import QWebEngineView
from PySide6.QtWidgets import (
    QFrame,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from search_executor import same_results_page

logger = logging.getLogger(__name__)

HOME_URL = "https://www.youtube.com"

_BAR_IDLE_STYLE = (
    "#mainSearchBar { background: #1f1f1f; border: 2px solid #3a3a3a; border-radius: 12px; }"
)
_BAR_ACTIVE_STYLE = (
    "#mainSearchBar { background: #27ae60; border: 2px solid #2ecc71; border-radius: 12px; }"
)

_CLICK_FIRST_SCRIPT = """
(function() {
  var el = document.querySelector(%s);
  if (el) { el.click(); return true; }
  return false;
})();
"""


class _ClickResult:
    def __init__(self) -> None:
        self.value: Any = None
        self.done = threading.Event()

    def resolve(self, value: Any) -> None:
        self.value = value
        self.done.set()


class WebViewSurface(QObject):
    """Thread-safe facade over a QWebEngineView.

    Calls may come from worker threads; the work is queued onto the UI thread
    and ``click_first`` waits for the JavaScript result. ``page_loaded`` stays
    False from ``load`` until the view has finished loading that URL.
    """

    _load_requested = Signal(str)
    _click_requested = Signal(str, object)

    def __init__(self, view: QWebEngineView, click_timeout_s: float = 2.0) -> None:
        super().__init__()
        self._view = view
        self._click_timeout_s = click_timeout_s
        self._expected_url: str | None = None
        self._page_ready = threading.Event()
        self._load_requested.connect(self._do_load)
        self._click_requested.connect(self._do_click)
        self._view.loadFinished.connect(self._on_load_finished)

    def load(self, url: str) -> None:
        # Cleared before the load is queued: the previous page never reads as ready.
        self._page_ready.clear()
        self._expected_url = url
        self._load_requested.emit(url)

    def page_loaded(self) -> bool:
        return self._page_ready.is_set()

    def click_first(self, selector: str) -> bool:
        if QThread.currentThread() == self.thread():
            raise RuntimeError("click_first must not be called from the UI thread")
        if not self._page_ready.is_set():
            return False
        result = _ClickResult()
        self._click_requested.emit(_CLICK_FIRST_SCRIPT % json.dumps(selector), result)
        if not result.done.wait(self._click_timeout_s):
            return False
        return bool(result.value)

    def _do_load(self, url: str) -> None:
        self._view.load(QUrl(url))

    def _on_load_finished(self, ok: bool) -> None:
        expected = self._expected_url
        if not ok or expected is None:
            return
        current = self._view.url().toString()
        if same_results_page(current, expected):
            self._page_ready.set()
        else:
            logger.debug("Ignoring load of %s while waiting for %s", current, expected)

    def _do_click(self, script: str, result: _ClickResult) -> None:
        self._view.page().runJavaScript(script, 0, result.resolve)


class QtConsentPrompt:
    def __init__(self, parent: QWidget | None = None) -> None:
        self._parent = parent

    def ask(self) -> bool:
        answer = QMessageBox.question(
            self._parent,
            "Microphone access",
            "This app listens for your activation word and needs the microphone.\n\n"
            "Allow microphone access?",
            QMessageBox.Yes | QMessageBox.No,
            QMessageBox.Yes,
        )
        return answer == QMessageBox.Yes


class MainWindow(QMainWindow):
    search_requested = Signal(str)
    activation_word_submitted = Signal(str)
    mic_toggled = Signal()

    def __init__(self, activation_word: str = "") -> None:
        super().__init__()
        self.setWindowTitle("Wake Search")
        self.resize(1200, 800)

        self.search_bar = QFrame()
        self.search_bar.setObjectName("mainSearchBar")
        self.search_bar.setStyleSheet(_BAR_IDLE_STYLE)

        self.search_input = QLineEdit()
        self.search_input.setPlaceholderText("Search YouTube or say the activation word…")
        self.search_input.returnPressed.connect(self._submit_search)
        self.search_button = QPushButton("Search")
        self.search_button.clicked.connect(self._submit_search)
        self.mic_button = QPushButton("🎤 Microphone")
        self.mic_button.clicked.connect(self.mic_toggled.emit)

        bar_layout = QHBoxLayout()
        bar_layout.setContentsMargins(12, 8, 12, 8)
        bar_layout.addWidget(self.search_input, 1)
        bar_layout.addWidget(self.search_button)
        bar_layout.addWidget(self.mic_button)
        self.search_bar.setLayout(bar_layout)

        self.activation_label = QLabel()
        self.activation_input = QLineEdit()
        self.activation_input.setPlaceholderText("New activation word")
        self.activation_input.returnPressed.connect(self._submit_activation_word)
        self.update_activation_button = QPushButton("Update")
        self.update_activation_button.clicked.connect(self._submit_activation_word)

        activation_layout = QHBoxLayout()
        activation_layout.addWidget(self.activation_label)
        activation_layout.addWidget(self.activation_input, 1)
        activation_layout.addWidget(self.update_activation_button)

        self.web_view = QWebEngineView()
        self.web_view.load(QUrl(HOME_URL))

        layout = QVBoxLayout()
        layout.addWidget(self.search_bar)
        layout.addLayout(activation_layout)
        layout.addWidget(self.web_view, 1)
        central = QWidget()
        central.setLayout(layout)
        self.setCentralWidget(central)

        self.set_activation_word(activation_word)

    def set_active(self, active: bool) -> None:
        """Toggle the search bar glow."""
        self.search_bar.setStyleSheet(_BAR_ACTIVE_STYLE if active else _BAR_IDLE_STYLE)

    def set_listening(self, listening: bool) -> None:
        self.mic_button.setText("🎤 Listening…" if listening else "🎤 Microphone")

    def set_activation_word(self, word: str) -> None:
        self.activation_label.setText(f"Activation word: <b>{word}</b>")

    def set_search_text(self, text: str) -> None:
        self.search_input.setText(text)

    def show_notice(self, message: str) -> None:
        QMessageBox.warning(self, "Wake Search", message)

    def show_info(self, message: str) -> None:
        QMessageBox.information(self, "Wake Search", message)

    def _submit_search(self) -> None:
        query = self.search_input.text().strip()
        if not query:
            return
        self.search_input.clear()
        self.search_requested.emit(query)

    def _submit_activation_word(self) -> None:
        word = self.activation_input.text()
        self.activation_input.clear()
        self.activation_word_submitted.emit(word)
