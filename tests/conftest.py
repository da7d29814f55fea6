from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import numpy as np
import pytest

import transport

SAMPLE_RATE = 16000


def sine_block(n_samples: int = 4800, frequency: float = 440.0, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(n_samples) / SAMPLE_RATE
    return (np.sin(2 * np.pi * frequency * t) * amplitude).astype(np.float32)


class FakeWebSocket:
    """Stands in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.incoming: asyncio.Queue[str | None] = asyncio.Queue()
        self.replies: dict[int, str] = {}
        self.closed = False
        self.close_code: int | None = None
        self.close_reason = ""

    @property
    def audio_frames(self) -> list[dict]:
        frames = [json.loads(payload) for payload in self.sent]
        return [frame for frame in frames if "audio_data" in frame]

    async def send(self, payload: str) -> None:
        self.sent.append(payload)
        reply = self.replies.get(len(self.audio_frames))
        if reply is not None and "audio_data" in payload:
            self.incoming.put_nowait(reply)

    def feed(self, message: str) -> None:
        self.incoming.put_nowait(message)

    def server_close(self, code: int, reason: str = "") -> None:
        self.close_code = code
        self.close_reason = reason
        self.incoming.put_nowait(None)

    async def close(self) -> None:
        self.closed = True
        self.close_code = 1000
        self.incoming.put_nowait(None)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        message = await self.incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message


@pytest.fixture
def fake_ws(monkeypatch: pytest.MonkeyPatch) -> FakeWebSocket:
    ws = FakeWebSocket()
    connect = AsyncMock(return_value=ws)
    monkeypatch.setattr(transport.websockets, "connect", connect)
    ws.connect_mock = connect  # type: ignore[attr-defined]
    return ws


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)
