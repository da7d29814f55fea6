"""Realtime transcription client over a websocket.

Outbound audio goes as JSON text frames ``{"audio_data": <base64 PCM16LE>}``;
inbound frames are JSON objects carrying ``text`` or ``transcript`` and an
optional ``message_type``. Anything that does not parse as a JSON object is
treated as a keepalive and ignored.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException

from config import DEFAULT_REALTIME_URL
from errors import NETWORK_ERROR, TOKEN_REJECTED, SessionFailure
from interfaces import CloseHandler, TranscriptHandler
from models import AudioBlock, ConnectionState, TranscriptEvent

logger = logging.getLogger(__name__)

FINAL_MESSAGE_TYPE = "FinalTranscript"


def _first_text(data: dict, *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


class RealtimeTranscriptionClient:
    def __init__(
        self,
        url: str = DEFAULT_REALTIME_URL,
        sample_rate: int = 16000,
        open_timeout_s: float = 10.0,
    ) -> None:
        self._url = url
        self._sample_rate = sample_rate
        self._open_timeout_s = open_timeout_s
        self._ws: Any = None
        self._state = ConnectionState.DISCONNECTED
        self._receive_task: Optional[asyncio.Task] = None
        self._handshake: Optional[asyncio.Future] = None
        self._on_transcript: Optional[TranscriptHandler] = None
        self._on_closed: Optional[CloseHandler] = None
        self.dropped_blocks = 0

    @property
    def connection_state(self) -> ConnectionState:
        return self._state

    def build_url(self, token: str) -> str:
        query = urlencode({"sample_rate": self._sample_rate, "token": token})
        return f"{self._url}?{query}"

    async def connect(
        self,
        token: str,
        on_transcript: TranscriptHandler,
        on_closed: CloseHandler,
    ) -> None:
        if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            raise SessionFailure(
                NETWORK_ERROR, f"Realtime connection already {self._state.value}"
            )
        self._on_transcript = on_transcript
        self._on_closed = on_closed
        self._state = ConnectionState.CONNECTING
        handshake = asyncio.ensure_future(
            websockets.connect(self.build_url(token), open_timeout=self._open_timeout_s)
        )
        self._handshake = handshake
        try:
            await asyncio.wait({handshake})
        except asyncio.CancelledError:
            handshake.cancel()
            if self._handshake is handshake:
                self._handshake = None
                self._state = ConnectionState.CLOSED
            raise

        if self._handshake is not handshake:
            # close() ran while the handshake was in flight
            await self._discard_handshake(handshake)
            raise SessionFailure(NETWORK_ERROR, "Realtime connection attempt cancelled")
        self._handshake = None

        try:
            ws = handshake.result()
        except InvalidStatus as exc:
            self._state = ConnectionState.CLOSED
            status = exc.response.status_code
            if status in (401, 403):
                raise SessionFailure(
                    TOKEN_REJECTED, f"Realtime handshake rejected ({status})"
                ) from exc
            raise SessionFailure(
                NETWORK_ERROR, f"Realtime handshake failed ({status})"
            ) from exc
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            self._state = ConnectionState.CLOSED
            raise SessionFailure(NETWORK_ERROR, str(exc) or type(exc).__name__) from exc

        self._ws = ws
        self._state = ConnectionState.OPEN
        self._receive_task = asyncio.get_running_loop().create_task(self._receive_loop(ws))
        logger.info("Realtime connection open (sample_rate=%d)", self._sample_rate)

    async def send(self, block: AudioBlock) -> None:
        ws = self._ws
        if self._state != ConnectionState.OPEN or ws is None:
            self.dropped_blocks += 1
            return
        payload = json.dumps(
            {"audio_data": base64.b64encode(block.pcm16_bytes).decode("ascii")}
        )
        try:
            await ws.send(payload)
        except WebSocketException:
            self.dropped_blocks += 1
            logger.debug("Audio frame dropped, connection went away")

    def on_message(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return
        if not isinstance(data, dict):
            return
        text = _first_text(data, "text", "transcript")
        if not text:
            return
        event = TranscriptEvent(
            text=text,
            is_final=data.get("message_type") == FINAL_MESSAGE_TYPE,
        )
        if self._on_transcript is not None:
            self._on_transcript(event)

    async def close(self) -> None:
        if self._state == ConnectionState.CONNECTING:
            handshake, self._handshake = self._handshake, None
            self._state = ConnectionState.CLOSED
            if handshake is not None:
                handshake.cancel()
            logger.info("Realtime connection attempt cancelled")
            return
        if self._state != ConnectionState.OPEN:
            return
        ws, self._ws = self._ws, None
        task, self._receive_task = self._receive_task, None
        self._state = ConnectionState.CLOSED
        try:
            await ws.send(json.dumps({"terminate_session": True}))
        except WebSocketException:
            logger.debug("terminate_session not delivered")
        try:
            await ws.close()
        finally:
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
        logger.info("Realtime connection closed")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _discard_handshake(self, handshake: asyncio.Future) -> None:
        if handshake.cancelled() or handshake.exception() is not None:
            return
        await handshake.result().close()

    async def _receive_loop(self, ws: Any) -> None:
        code: Optional[int] = None
        reason = ""
        try:
            async for message in ws:
                self.on_message(message)
            code, reason = ws.close_code, ws.close_reason or ""
        except ConnectionClosed as exc:
            if exc.rcvd is not None:
                code, reason = exc.rcvd.code, exc.rcvd.reason
        except (OSError, WebSocketException) as exc:
            reason = str(exc)

        if self._state != ConnectionState.OPEN or self._ws is not ws:
            return
        self._state = ConnectionState.CLOSED
        self._ws = None
        self._receive_task = None
        logger.warning("Realtime connection closed by server (code=%s, reason=%s)", code, reason)
        if self._on_closed is not None:
            await self._on_closed(code, reason)
