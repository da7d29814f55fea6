"""Microphone capture engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import numpy as np

from errors import UNSUPPORTED_ENVIRONMENT, SessionFailure, classify_device_error
from interfaces import BlockConsumer

try:
    import sounddevice as sd
except Exception:  # pragma: no cover - PortAudio missing
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDeviceRecorder:
    """Push-based capture engine with a single downstream consumer.

    The PortAudio callback thread copies each block and posts it onto the
    event loop that called ``acquire``. Blocks land in a bounded queue (full
    means the block is dropped) and one pump task hands them to the consumer
    in capture order.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        block_size: int = 4096,
        queue_maxsize: int = 32,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = block_size
        self.dropped_blocks = 0
        self._queue_maxsize = queue_maxsize
        self._stream: Any = None
        self._running = False
        self._acquire_id = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue[np.ndarray]] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._on_block: Optional[BlockConsumer] = None

    async def acquire(self, on_block: BlockConsumer) -> None:
        if self._running:
            return
        if sd is None:
            raise SessionFailure(UNSUPPORTED_ENVIRONMENT, "sounddevice/PortAudio is not available")

        loop = asyncio.get_running_loop()
        self._loop = loop
        self._queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._on_block = on_block
        self._running = True
        self._acquire_id += 1
        acquire_id = self._acquire_id
        try:
            stream = await loop.run_in_executor(None, self._open_stream)
        except BaseException:
            if acquire_id == self._acquire_id:
                self._running = False
                self._queue = None
                self._on_block = None
            raise

        if not self._running or acquire_id != self._acquire_id:
            # released while the device was opening
            self._close_stream(stream)
            return

        self._stream = stream
        self._pump_task = loop.create_task(self._pump(self._queue))
        logger.info(
            "Audio capture started (rate=%d, channels=%d, block=%d)",
            self.sample_rate, self.channels, self.block_size,
        )

    def release(self) -> None:
        was_running = self._running
        self._running = False
        stream, self._stream = self._stream, None
        task, self._pump_task = self._pump_task, None
        self._queue = None
        self._on_block = None
        if task is not None and not task.done():
            task.cancel()
        if stream is not None:
            self._close_stream(stream)
        if was_running:
            logger.info("Audio capture released (dropped=%d)", self.dropped_blocks)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _open_stream(self) -> Any:
        try:
            sd.query_devices(kind="input")
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=self.block_size,
                callback=self._on_audio,
            )
        except Exception as exc:
            raise SessionFailure(classify_device_error(exc), str(exc)) from exc
        try:
            stream.start()
        except Exception as exc:
            stream.close()
            raise SessionFailure(classify_device_error(exc), str(exc)) from exc
        return stream

    def _close_stream(self, stream: Any) -> None:
        stream.stop()
        stream.close()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.warning("Audio capture status: %s", status)
        loop = self._loop
        if not self._running or loop is None:
            return
        samples = np.asarray(indata, dtype=np.float32)
        if samples.ndim > 1:
            samples = samples.mean(axis=1)
        samples = np.array(samples, dtype=np.float32, copy=True)
        try:
            loop.call_soon_threadsafe(self._offer, samples)
        except RuntimeError:
            # loop already closed
            return

    def _offer(self, samples: np.ndarray) -> None:
        queue = self._queue
        if not self._running or queue is None:
            return
        try:
            queue.put_nowait(samples)
        except asyncio.QueueFull:
            self.dropped_blocks += 1
            logger.debug("Capture queue full, dropped block (%d total)", self.dropped_blocks)

    async def _pump(self, queue: asyncio.Queue[np.ndarray]) -> None:
        while True:
            samples = await queue.get()
            consumer = self._on_block
            if consumer is None:
                return
            try:
                await consumer(samples)
            except Exception:
                logger.exception("Block consumer failed")
