"""Protocol interfaces used by SessionController."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol

import numpy as np

from models import AudioBlock, ConnectionState, TranscriptEvent

BlockConsumer = Callable[[np.ndarray], Awaitable[None]]
TranscriptHandler = Callable[[TranscriptEvent], None]
CloseHandler = Callable[[Optional[int], str], Awaitable[None]]


class CaptureEngine(Protocol):
    async def acquire(self, on_block: BlockConsumer) -> None: ...

    def release(self) -> None: ...


class TranscriptTransport(Protocol):
    @property
    def connection_state(self) -> ConnectionState: ...

    async def connect(
        self,
        token: str,
        on_transcript: TranscriptHandler,
        on_closed: CloseHandler,
    ) -> None: ...

    async def send(self, block: AudioBlock) -> None: ...

    async def close(self) -> None: ...


class TokenProvider(Protocol):
    async def fetch_token(self) -> str: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_token_endpoint(self) -> str: ...

    def set_token_endpoint(self, url: str) -> None: ...

    def get_realtime_url(self) -> str: ...

    def get_sample_rate(self) -> int: ...

    def get_block_size(self) -> int: ...

    def get_log_level(self) -> str: ...
