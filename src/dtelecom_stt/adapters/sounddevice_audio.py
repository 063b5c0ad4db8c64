import asyncio
import logging
from collections.abc import AsyncIterator

import janus
import numpy as np
import sounddevice as sd

from dtelecom_stt.audio import BYTES_PER_SECOND, CHANNELS, SAMPLE_RATE

logger = logging.getLogger(__name__)

QUEUE_FRAMES = 100


def float_to_pcm16(samples: np.ndarray) -> bytes:
    clipped = np.clip(samples, -1.0, 1.0)
    return (clipped * 32767).astype(np.int16).tobytes()


def find_input_device(name: str) -> tuple[int, str] | None:
    """Index and full name of the first input device whose name contains ``name``."""
    wanted = name.lower()
    for index, dev in enumerate(sd.query_devices()):
        if wanted in dev["name"].lower() and dev["max_input_channels"] > 0:
            return index, dev["name"]
    return None


def resolve_input_device(device: str | int | None) -> int | None:
    if device is None or device == "":
        return None
    if isinstance(device, int):
        return device
    if device.isdigit():
        return int(device)

    match = find_input_device(device)
    if match is None:
        logger.warning("Input device '%s' not found, using the default input", device)
        return None
    logger.info("Resolved device '%s' -> %d (%s)", device, *match)
    return match[0]


class SounddeviceCapture:
    """Microphone input as PCM16 16 kHz mono chunks of ``chunk_ms`` each.

    PortAudio calls back on its own thread; chunks cross into the event loop
    through a janus queue. When the consumer falls behind by more than
    ``QUEUE_FRAMES`` chunks, new audio is dropped.
    """

    def __init__(
        self,
        device: str | int | None = None,
        chunk_ms: int = 20,
        gain: float = 1.0,
    ) -> None:
        self._device = device
        self._chunk_ms = chunk_ms
        self._blocksize = SAMPLE_RATE * chunk_ms // 1000
        self._gain = gain
        self._stream: sd.InputStream | None = None
        self._queue: janus.Queue[bytes] | None = None
        self._dropped = 0

    @property
    def chunk_bytes(self) -> int:
        return BYTES_PER_SECOND * self._chunk_ms // 1000

    @property
    def dropped(self) -> int:
        return self._dropped

    async def start(self) -> None:
        queue: janus.Queue[bytes] = janus.Queue(maxsize=QUEUE_FRAMES)
        self._queue = queue

        def on_audio(indata: np.ndarray, frames: int, time_info, status) -> None:
            if status:
                logger.warning("Audio capture status: %s", status)
            try:
                queue.sync_q.put_nowait(float_to_pcm16(indata[:, 0] * self._gain))
            except janus.SyncQueueFull:
                self._dropped += 1

        device = resolve_input_device(self._device)
        self._stream = sd.InputStream(
            device=device,
            samplerate=SAMPLE_RATE,
            channels=CHANNELS,
            dtype="float32",
            blocksize=self._blocksize,
            callback=on_audio,
        )
        self._stream.start()
        logger.info("Microphone open (device=%s, chunk=%dms)", device, self._chunk_ms)

    async def stop(self) -> None:
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        if self._queue is not None:
            self._queue.close()
            await self._queue.wait_closed()
            self._queue = None
        if self._dropped:
            logger.warning("Dropped %d microphone chunks while the stream was busy", self._dropped)

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield captured chunks until ``stop`` is called."""
        queue = self._queue
        if queue is None:
            return
        while True:
            try:
                yield await asyncio.wait_for(queue.async_q.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except janus.AsyncQueueShutDown:
                return
