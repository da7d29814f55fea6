"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from functools import partial
from typing import Any, Coroutine

from config import JsonConfigStore
from interfaces import ConfigStore, TokenProvider
from models import SessionState
from recorder import SoundDeviceRecorder
from session_controller import SessionController
from token_client import AssemblyAITokenProvider, EndpointTokenProvider
from transport import RealtimeTranscriptionClient

try:
    from PySide6.QtCore import QObject, Signal
    from PySide6.QtWidgets import QApplication, QInputDialog, QMessageBox
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

from recorder_panel import RecorderPanel

logger = logging.getLogger(__name__)


class UIBridge(QObject):
    transcript_signal = Signal(str)
    tick_signal = Signal(int)
    snapshot_signal = Signal()


class LoopThread:
    """Runs the session event loop off the Qt thread."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="session-loop", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> None:
        asyncio.run_coroutine_threadsafe(coro, self.loop)

    def call(self, fn: Any) -> None:
        self.loop.call_soon_threadsafe(fn)

    def stop(self, timeout_s: float = 2.0) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=timeout_s)

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()


def _build_token_provider(config_store: ConfigStore) -> TokenProvider:
    endpoint = config_store.get_token_endpoint()
    if endpoint:
        return EndpointTokenProvider(endpoint)
    return AssemblyAITokenProvider(api_key=config_store.get_api_key())


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)-5s %(name)-18s %(message)s",
    )


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store = JsonConfigStore()
        _configure_logging(self.config_store.get_log_level())

        self.ui = UIBridge()
        self.ui.transcript_signal.connect(self._on_transcript_ui)
        self.ui.tick_signal.connect(self._on_tick_ui)
        self.ui.snapshot_signal.connect(self._render_ui)

        sample_rate = self.config_store.get_sample_rate()
        self.loop_thread = LoopThread()
        self.controller = SessionController(
            recorder=SoundDeviceRecorder(
                sample_rate=sample_rate,
                block_size=self.config_store.get_block_size(),
            ),
            transport=RealtimeTranscriptionClient(
                url=self.config_store.get_realtime_url(),
                sample_rate=sample_rate,
            ),
            token_provider=_build_token_provider(self.config_store),
            sample_rate=sample_rate,
            on_transcript=self._on_transcript,
            on_state_change=self._on_state_change,
            on_error=self._on_error,
            on_tick=self._on_tick,
        )

        self.panel = RecorderPanel(
            on_start=self._on_start_clicked,
            on_pause_resume=self._on_pause_resume_clicked,
            on_stop=self._on_stop_clicked,
            on_set_api_key=self._set_api_key,
            on_set_token_endpoint=self._set_token_endpoint,
        )
        self.app.aboutToQuit.connect(self.quit)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(self.panel, "API Key", "AssemblyAI API Key")
        if not ok:
            return
        self.config_store.set_api_key(value.strip())
        self._apply_token_provider()
        QMessageBox.information(self.panel, "Saved", "API Key saved and applied.")

    def _set_token_endpoint(self) -> None:
        value, ok = QInputDialog.getText(
            self.panel,
            "Token Endpoint",
            "URL that returns {\"token\": ...}; leave empty to use the API key",
            text=self.config_store.get_token_endpoint(),
        )
        if not ok:
            return
        self.config_store.set_token_endpoint(value.strip())
        self._apply_token_provider()
        QMessageBox.information(self.panel, "Saved", "Token endpoint saved and applied.")

    def _apply_token_provider(self) -> None:
        provider = _build_token_provider(self.config_store)
        self.loop_thread.call(partial(self.controller.replace_token_provider, provider))

    # ------------------------------------------------------------------
    # Callbacks (called on the session loop → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_transcript(self, text: str) -> None:
        self.ui.transcript_signal.emit(text)

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.snapshot_signal.emit()

    def _on_error(self, code: str, message: str) -> None:
        logger.info("Session error surfaced: %s", code)
        self.ui.snapshot_signal.emit()

    def _on_tick(self, elapsed_ms: int) -> None:
        self.ui.tick_signal.emit(elapsed_ms)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_transcript_ui(self, text: str) -> None:
        self.panel.set_transcript(text)

    def _on_tick_ui(self, elapsed_ms: int) -> None:
        self.panel.set_elapsed(elapsed_ms)

    def _render_ui(self) -> None:
        self.panel.render(self.controller.snapshot())

    # ------------------------------------------------------------------
    # Button handlers
    # ------------------------------------------------------------------

    def _on_start_clicked(self) -> None:
        self.panel.set_transcript("")
        self.loop_thread.submit(self.controller.start())

    def _on_pause_resume_clicked(self) -> None:
        if self.controller.state == SessionState.PAUSED:
            self.loop_thread.call(self.controller.resume)
        else:
            self.loop_thread.call(self.controller.pause)

    def _on_stop_clicked(self) -> None:
        self.loop_thread.submit(self.controller.stop())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.loop_thread.start()
        self.panel.show()
        return self.app.exec()

    def quit(self) -> None:
        future = asyncio.run_coroutine_threadsafe(self.controller.stop(), self.loop_thread.loop)
        try:
            future.result(timeout=2.0)
        except Exception:
            logger.warning("Session did not stop cleanly on quit", exc_info=True)
        self.loop_thread.stop()


def main() -> int:
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
