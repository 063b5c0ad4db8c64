import asyncio
import logging
from collections.abc import Awaitable, Callable

from dtelecom_stt.audio import BYTES_PER_SECOND, silence

logger = logging.getLogger(__name__)

CHUNK_MS = 20
TRAILING_SILENCE_SECONDS = 2.0

SendFn = Callable[[bytes], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


class AudioPacer:
    """Sends PCM16 audio at real-time speed, like a microphone would.

    One ``chunk_ms`` chunk goes out, then the pacer sleeps for that chunk's
    duration. After the last chunk a single frame of trailing silence is sent
    and waited out, so server-side VAD closes the final utterance.
    """

    def __init__(
        self,
        send: SendFn,
        chunk_ms: int = CHUNK_MS,
        trailing_silence_seconds: float = TRAILING_SILENCE_SECONDS,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._send = send
        self._chunk_ms = chunk_ms
        self._chunk_bytes = BYTES_PER_SECOND * chunk_ms // 1000
        self._trailing_silence_seconds = trailing_silence_seconds
        self._sleep = sleep

    @property
    def chunk_bytes(self) -> int:
        return self._chunk_bytes

    async def stream(self, pcm_data: bytes) -> int:
        chunk_seconds = self._chunk_ms / 1000
        chunks_sent = 0
        for offset in range(0, len(pcm_data), self._chunk_bytes):
            await self._send(pcm_data[offset:offset + self._chunk_bytes])
            chunks_sent += 1
            await self._sleep(chunk_seconds)

        logger.debug(
            "Sent %d chunks, flushing with %.1fs of silence",
            chunks_sent, self._trailing_silence_seconds,
        )
        if self._trailing_silence_seconds > 0:
            await self._send(silence(self._trailing_silence_seconds))
            await self._sleep(self._trailing_silence_seconds)
        return chunks_sent
