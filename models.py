"""Core data models for the recorder."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionState(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class AudioBlock:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class TranscriptEvent:
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class SessionError:
    code: str
    message: str


@dataclass(frozen=True)
class SessionSnapshot:
    state: SessionState
    elapsed_ms: int
    last_error: Optional[SessionError] = None
