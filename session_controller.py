"""State-machine based session orchestration.

All handlers run on one asyncio event loop: user commands, capture blocks
pumped by the recorder, transport events and the clock tick. Session state
is therefore mutated without locks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import numpy as np

from encoder import encode_block
from errors import ERROR_MESSAGES, NETWORK_ERROR, TOKEN_REJECTED, SessionFailure
from interfaces import CaptureEngine, TokenProvider, TranscriptTransport
from models import SessionError, SessionSnapshot, SessionState, TranscriptEvent
from session_clock import ElapsedClock, TimeSource

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
TranscriptCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
TickCallback = Callable[[int], None]

UNAUTHORIZED_CLOSE_CODE = 4001

_ACTIVE_STATES = (SessionState.ACQUIRING, SessionState.RECORDING, SessionState.PAUSED)
_READY_STATES = (SessionState.IDLE, SessionState.STOPPED)


class SessionController:
    def __init__(
        self,
        recorder: CaptureEngine,
        transport: TranscriptTransport,
        token_provider: TokenProvider,
        sample_rate: int = 16000,
        tick_interval_s: float = 0.2,
        clock: Optional[TimeSource] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_tick: Optional[TickCallback] = None,
    ) -> None:
        self._recorder = recorder
        self._transport = transport
        self._token_provider = token_provider
        self._sample_rate = sample_rate
        self._tick_interval_s = tick_interval_s
        self._on_transcript = on_transcript
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._on_tick = on_tick

        self._state = SessionState.IDLE
        self._generation = 0
        self._clock = ElapsedClock(clock)
        self._tick_task: Optional[asyncio.Task] = None
        self._last_error: Optional[SessionError] = None
        self.latest_transcript = ""

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def elapsed_ms(self) -> int:
        return self._clock.elapsed_ms

    @property
    def last_error(self) -> Optional[SessionError]:
        return self._last_error

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            elapsed_ms=self._clock.elapsed_ms,
            last_error=self._last_error,
        )

    def replace_token_provider(self, token_provider: TokenProvider) -> None:
        """Swap the token source; used from the next token fetch on."""
        self._token_provider = token_provider

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._state not in _READY_STATES:
            return
        self._generation += 1
        generation = self._generation
        self._last_error = None
        self.latest_transcript = ""
        self._clock.reset()
        self._transition(SessionState.ACQUIRING)

        try:
            await self._recorder.acquire(self._handle_block)
            if self._is_stale(generation):
                if self._state in _READY_STATES:
                    self._safe_release_recorder()
                return
            token = await self._token_provider.fetch_token()
            if self._is_stale(generation):
                return
            await self._transport.connect(
                token, self._handle_transcript, self._handle_transport_closed
            )
            if self._is_stale(generation):
                if self._state in _READY_STATES:
                    logger.info("Connection opened after stop, closing it")
                    await self._safe_close_transport()
                return
        except SessionFailure as exc:
            if self._is_stale(generation):
                logger.info("Ignoring failure of cancelled start: %s", exc)
                return
            await self._fail(exc.code, exc.message)
            return
        except Exception as exc:
            if self._is_stale(generation):
                logger.info("Ignoring failure of cancelled start: %s", exc)
                return
            logger.exception("Unexpected failure while starting session")
            await self._fail(NETWORK_ERROR, f"start failed: {exc}")
            return

        self._clock.start()
        self._start_ticker()
        self._transition(SessionState.RECORDING)

    def pause(self) -> None:
        if self._state != SessionState.RECORDING:
            return
        self._clock.pause()
        self._stop_ticker()
        self._transition(SessionState.PAUSED)

    def resume(self) -> None:
        if self._state != SessionState.PAUSED:
            return
        self._clock.resume()
        self._start_ticker()
        self._transition(SessionState.RECORDING)

    async def stop(self) -> None:
        previous = self._state
        self._generation += 1
        self._clock.pause()
        self._stop_ticker()
        self._safe_release_recorder()
        await self._safe_close_transport()
        if previous in _ACTIVE_STATES:
            self._transition(SessionState.STOPPED)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _handle_block(self, samples: np.ndarray) -> None:
        if self._state != SessionState.RECORDING:
            return
        block = encode_block(samples, sample_rate=self._sample_rate)
        await self._transport.send(block)

    def _handle_transcript(self, event: TranscriptEvent) -> None:
        self.latest_transcript = event.text
        if self._on_transcript:
            self._on_transcript(event.text)

    async def _handle_transport_closed(self, code: Optional[int], reason: str) -> None:
        if self._state not in (SessionState.RECORDING, SessionState.PAUSED):
            return
        error_code = TOKEN_REJECTED if code == UNAUTHORIZED_CLOSE_CODE else NETWORK_ERROR
        message = ERROR_MESSAGES[error_code]
        if reason:
            message = f"{message} ({reason})"
        await self._fail(error_code, message)

    async def _run_ticker(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval_s)
            if self._on_tick:
                self._on_tick(self._clock.elapsed_ms)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    async def _fail(self, code: str, message: str) -> None:
        self._generation += 1
        self._last_error = SessionError(code=code, message=message or ERROR_MESSAGES.get(code, code))
        logger.warning("Session failed: %s: %s", code, self._last_error.message)
        self._clock.pause()
        self._stop_ticker()
        self._safe_release_recorder()
        await self._safe_close_transport()
        self._transition(SessionState.IDLE)
        self._emit_error(code, self._last_error.message)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _start_ticker(self) -> None:
        self._stop_ticker()
        self._tick_task = asyncio.get_running_loop().create_task(self._run_ticker())

    def _stop_ticker(self) -> None:
        task, self._tick_task = self._tick_task, None
        if task is not None and not task.done():
            task.cancel()

    def _safe_release_recorder(self) -> None:
        try:
            self._recorder.release()
        except Exception:
            logger.warning("Capture release failed", exc_info=True)

    async def _safe_close_transport(self) -> None:
        try:
            await self._transport.close()
        except Exception:
            logger.warning("Transport close failed", exc_info=True)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.info("State: %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
