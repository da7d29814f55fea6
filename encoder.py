"""Float sample blocks to little-endian PCM16."""

from __future__ import annotations

import time
from typing import Sequence, Union

import numpy as np

from models import AudioBlock

Samples = Union[np.ndarray, Sequence[float]]


def encode_samples(samples: Samples) -> bytes:
    """Clamp to [-1, 1] and scale to signed 16-bit, truncating toward zero.

    Negative samples scale by 32768 and non-negative ones by 32767, so -1.0
    maps to -32768 and 1.0 to 32767.
    """
    data = np.clip(np.asarray(samples, dtype=np.float32).reshape(-1), -1.0, 1.0)
    data = np.nan_to_num(data, nan=0.0)
    scaled = np.where(data < 0, data * 32768.0, data * 32767.0)
    return scaled.astype("<i2").tobytes()


def encode_block(
    samples: Samples,
    sample_rate: int = 16000,
    channels: int = 1,
    timestamp_ms: int | None = None,
) -> AudioBlock:
    return AudioBlock(
        pcm16_bytes=encode_samples(samples),
        sample_rate=sample_rate,
        channels=channels,
        timestamp_ms=int(time.time() * 1000) if timestamp_ms is None else timestamp_ms,
    )
