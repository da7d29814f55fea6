"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from pathlib import Path

DEFAULT_REALTIME_URL = "wss://api.assemblyai.com/v2/realtime/ws"
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_BLOCK_SIZE = 4096


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "live_notes" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key") or os.getenv("ASSEMBLYAI_API_KEY", ""))

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_token_endpoint(self) -> str:
        data = self._read_all()
        return str(data.get("token_endpoint") or os.getenv("LIVE_NOTES_TOKEN_ENDPOINT", ""))

    def set_token_endpoint(self, url: str) -> None:
        self._set("token_endpoint", url)

    def get_realtime_url(self) -> str:
        data = self._read_all()
        return str(data.get("realtime_url") or DEFAULT_REALTIME_URL)

    def get_sample_rate(self) -> int:
        return self._get_int("sample_rate", DEFAULT_SAMPLE_RATE)

    def get_block_size(self) -> int:
        return self._get_int("block_size", DEFAULT_BLOCK_SIZE)

    def get_log_level(self) -> str:
        data = self._read_all()
        return str(data.get("log_level", "INFO")).upper()

    def _get_int(self, key: str, default: int) -> int:
        data = self._read_all()
        try:
            value = int(data.get(key, default))
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    def _set(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
