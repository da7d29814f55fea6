"""Tests for SoundDeviceRecorder."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from conftest import settle
from errors import (
    DEVICE_BUSY,
    DEVICE_NOT_FOUND,
    PERMISSION_DENIED,
    UNSUPPORTED_ENVIRONMENT,
    SessionFailure,
)
from recorder import SoundDeviceRecorder


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class _Collector:
    def __init__(self) -> None:
        self.blocks: list[np.ndarray] = []

    async def __call__(self, samples: np.ndarray) -> None:
        self.blocks.append(samples)


def _fake_input(n_samples: int = 4096, value: float = 0.25, channels: int = 1) -> np.ndarray:
    return np.full((n_samples, channels), value, dtype=np.float32)


# ---------------------------------------------------------------
# Basic acquire / release
# ---------------------------------------------------------------

@pytest.mark.asyncio
@patch("recorder.sd")
async def test_acquire_creates_stream_and_release_closes_it(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder(sample_rate=16000, block_size=4096)
    await recorder.acquire(_Collector())

    kwargs = mock_sd.InputStream.call_args.kwargs
    assert kwargs["samplerate"] == 16000
    assert kwargs["blocksize"] == 4096
    assert kwargs["dtype"] == "float32"
    mock_stream.start.assert_called_once()
    assert recorder._stream is not None

    recorder.release()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert recorder._stream is None


@pytest.mark.asyncio
@patch("recorder.sd")
async def test_acquire_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    await recorder.acquire(_Collector())
    await recorder.acquire(_Collector())  # second call should be no-op

    assert mock_sd.InputStream.call_count == 1
    recorder.release()


@pytest.mark.asyncio
@patch("recorder.sd")
async def test_release_is_idempotent(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    await recorder.acquire(_Collector())
    recorder.release()
    recorder.release()

    mock_stream.close.assert_called_once()


def test_release_without_acquire_does_not_raise() -> None:
    recorder = SoundDeviceRecorder()
    recorder.release()
    recorder.release()


# ---------------------------------------------------------------
# Audio callback delivers blocks in order
# ---------------------------------------------------------------

@pytest.mark.asyncio
@patch("recorder.sd")
async def test_callback_delivers_blocks_in_capture_order(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    collector = _Collector()

    recorder = SoundDeviceRecorder()
    await recorder.acquire(collector)

    for value in (0.1, 0.2, 0.3):
        recorder._on_audio(_fake_input(value=value), frames=4096, time_info=None, status=None)
    await settle()

    assert [round(float(b[0]), 2) for b in collector.blocks] == [0.1, 0.2, 0.3]
    assert collector.blocks[0].shape == (4096,)
    recorder.release()


@pytest.mark.asyncio
@patch("recorder.sd")
async def test_callback_copies_driver_buffer(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    collector = _Collector()

    recorder = SoundDeviceRecorder()
    await recorder.acquire(collector)

    buffer = _fake_input(value=0.5)
    recorder._on_audio(buffer, frames=4096, time_info=None, status=None)
    buffer[:] = 0.0  # driver reuses its buffer
    await settle()

    assert float(collector.blocks[0][0]) == pytest.approx(0.5)
    recorder.release()


@pytest.mark.asyncio
@patch("recorder.sd")
async def test_stereo_input_is_downmixed(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    collector = _Collector()

    recorder = SoundDeviceRecorder(channels=2)
    await recorder.acquire(collector)

    stereo = np.zeros((8, 2), dtype=np.float32)
    stereo[:, 0] = 0.5
    recorder._on_audio(stereo, frames=8, time_info=None, status=None)
    await settle()

    assert collector.blocks[0].tolist() == [0.25] * 8
    recorder.release()


# ---------------------------------------------------------------
# Queue full - dropped blocks counting
# ---------------------------------------------------------------

@pytest.mark.asyncio
@patch("recorder.sd")
async def test_queue_full_increments_dropped_blocks(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(queue_maxsize=1)
    await recorder.acquire(_Collector())

    # offered back to back before the pump gets a turn
    recorder._offer(np.zeros(4, dtype=np.float32))
    recorder._offer(np.zeros(4, dtype=np.float32))

    assert recorder.dropped_blocks == 1
    recorder.release()


# ---------------------------------------------------------------
# Device failures
# ---------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "message, code",
    [
        ("Error opening InputStream: Device unavailable [PaErrorCode -9985]", DEVICE_BUSY),
        ("No input device matching ''", DEVICE_NOT_FOUND),
        ("Error querying device -1", DEVICE_NOT_FOUND),
        ("Microphone access permission denied", PERMISSION_DENIED),
    ],
)
async def test_device_errors_are_classified(monkeypatch, message: str, code: str) -> None:  # noqa: ANN001
    import recorder as rec_mod

    mock_sd = MagicMock()
    mock_sd.InputStream.side_effect = RuntimeError(message)
    monkeypatch.setattr(rec_mod, "sd", mock_sd)

    recorder = SoundDeviceRecorder()
    with pytest.raises(SessionFailure) as info:
        await recorder.acquire(_Collector())

    assert info.value.code == code
    assert recorder._stream is None


@pytest.mark.asyncio
@patch("recorder.sd")
async def test_stream_start_failure_closes_stream(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_stream.start.side_effect = RuntimeError("Device unavailable")
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    with pytest.raises(SessionFailure) as info:
        await recorder.acquire(_Collector())

    assert info.value.code == DEVICE_BUSY
    mock_stream.close.assert_called_once()


@pytest.mark.asyncio
async def test_acquire_raises_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    recorder = SoundDeviceRecorder()
    with pytest.raises(SessionFailure) as info:
        await recorder.acquire(_Collector())
    assert info.value.code == UNSUPPORTED_ENVIRONMENT


# ---------------------------------------------------------------
# Callback after release is a no-op
# ---------------------------------------------------------------

@pytest.mark.asyncio
@patch("recorder.sd")
async def test_callback_after_release_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()
    collector = _Collector()

    recorder = SoundDeviceRecorder()
    await recorder.acquire(collector)
    recorder.release()

    recorder._on_audio(_fake_input(), frames=4096, time_info=None, status=None)
    await settle()

    assert collector.blocks == []
