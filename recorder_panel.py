"""Recorder panel widget: status, elapsed time, latest transcript, controls."""

from __future__ import annotations

from typing import Callable, Optional

from models import SessionSnapshot, SessionState
from session_clock import format_elapsed

try:
    from PySide6.QtCore import Qt
    from PySide6.QtWidgets import QHBoxLayout, QLabel, QPushButton, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QHBoxLayout = object  # type: ignore
    QLabel = object  # type: ignore
    QPushButton = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

STATUS_LABELS = {
    SessionState.IDLE: "Idle",
    SessionState.ACQUIRING: "Connecting...",
    SessionState.RECORDING: "Recording",
    SessionState.PAUSED: "Paused",
    SessionState.STOPPED: "Stopped",
}

RECORDING_COLOR = "#FF4444"
NEUTRAL_COLOR = "#888888"


def button_states(state: SessionState) -> dict[str, bool]:
    """Which controls are enabled for a given session state."""
    active = state in (SessionState.RECORDING, SessionState.PAUSED)
    return {
        "start": state in (SessionState.IDLE, SessionState.STOPPED),
        "pause": active,
        "stop": active,
    }


class RecorderPanel(QWidget):
    def __init__(
        self,
        on_start: Callable[[], None],
        on_pause_resume: Callable[[], None],
        on_stop: Callable[[], None],
        on_set_api_key: Optional[Callable[[], None]] = None,
        on_set_token_endpoint: Optional[Callable[[], None]] = None,
    ) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowTitle("Live Notes Recorder")
        self.setMinimumWidth(420)

        self._status = QLabel(STATUS_LABELS[SessionState.IDLE])
        self._elapsed = QLabel(format_elapsed(0))
        self._elapsed.setStyleSheet("font-size: 28px; font-weight: 600;")
        self._error = QLabel("")
        self._error.setWordWrap(True)
        self._error.setStyleSheet("color: #FF6B6B; font-size: 12px;")
        self._error.hide()
        self._transcript = QLabel("")
        self._transcript.setWordWrap(True)
        self._transcript.setMinimumHeight(48)
        self._transcript.setAlignment(Qt.AlignTop | Qt.AlignLeft)

        self._start_button = QPushButton("Start")
        self._pause_button = QPushButton("Pause")
        self._stop_button = QPushButton("Stop")
        self._start_button.clicked.connect(on_start)
        self._pause_button.clicked.connect(on_pause_resume)
        self._stop_button.clicked.connect(on_stop)

        buttons = QHBoxLayout()
        buttons.addWidget(self._start_button)
        buttons.addWidget(self._pause_button)
        buttons.addWidget(self._stop_button)

        settings = QHBoxLayout()
        for label, handler in (
            ("Set API Key", on_set_api_key),
            ("Set Token Endpoint", on_set_token_endpoint),
        ):
            if handler is None:
                continue
            button = QPushButton(label)
            button.setFlat(True)
            button.clicked.connect(handler)
            settings.addWidget(button)

        layout = QVBoxLayout()
        layout.addWidget(self._status)
        layout.addWidget(self._elapsed)
        layout.addWidget(self._error)
        layout.addWidget(self._transcript)
        layout.addLayout(buttons)
        layout.addLayout(settings)
        self.setLayout(layout)

        self.render(SessionSnapshot(state=SessionState.IDLE, elapsed_ms=0))

    def render(self, snapshot: SessionSnapshot) -> None:
        state = snapshot.state
        color = RECORDING_COLOR if state == SessionState.RECORDING else NEUTRAL_COLOR
        self._status.setText(STATUS_LABELS[state])
        self._status.setStyleSheet(f"color: {color}; font-weight: 500;")
        self.set_elapsed(snapshot.elapsed_ms)
        self.set_error(snapshot.last_error.message if snapshot.last_error else None)

        enabled = button_states(state)
        self._start_button.setEnabled(enabled["start"])
        self._pause_button.setEnabled(enabled["pause"])
        self._pause_button.setText("Resume" if state == SessionState.PAUSED else "Pause")
        self._stop_button.setEnabled(enabled["stop"])

    def set_elapsed(self, elapsed_ms: int) -> None:
        self._elapsed.setText(format_elapsed(elapsed_ms))

    def set_transcript(self, text: str) -> None:
        self._transcript.setText(text)

    def set_error(self, message: Optional[str]) -> None:
        if message:
            self._error.setText(message)
            self._error.show()
        else:
            self._error.clear()
            self._error.hide()
