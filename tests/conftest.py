import asyncio
import os
import io
import json
import struct
import wave

import numpy as np
import pytest
from websockets.exceptions import ConnectionClosedOK

from dtelecom_stt.domain.session import ExtensionResult, PricingInfo, SessionDescriptor
from dtelecom_stt.errors import PaymentError, STTConnectionError

SAMPLE_RATE = 16000
BYTES_PER_SECOND = SAMPLE_RATE * 2

_CLOSE = object()


def generate_silence(duration_ms: int = 20, sample_rate: int = SAMPLE_RATE) -> bytes:
    num_samples = int(sample_rate * duration_ms / 1000)
    return np.zeros(num_samples, dtype=np.int16).tobytes()


def generate_sine_wave(
    frequency: float = 440.0,
    duration_ms: int = 20,
    amplitude: float = 0.8,
    sample_rate: int = SAMPLE_RATE,
) -> bytes:
    num_samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(num_samples) / sample_rate
    signal = np.sin(2 * np.pi * frequency * t) * amplitude
    return (signal * 32767).astype(np.int16).tobytes()


def pcm_to_wav_bytes(pcm_data: bytes, sample_rate: int = SAMPLE_RATE, channels: int = 1) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm_data)
    return buffer.getvalue()


def riff_chunk(chunk_id: bytes, body: bytes) -> bytes:
    chunk = chunk_id + struct.pack("<I", len(body)) + body
    if len(body) % 2:
        chunk += b"\x00"
    return chunk


def fmt_body(
    audio_format: int = 1,
    channels: int = 1,
    sample_rate: int = SAMPLE_RATE,
    bits_per_sample: int = 16,
) -> bytes:
    block_align = channels * bits_per_sample // 8
    return struct.pack(
        "<HHIIHH",
        audio_format, channels, sample_rate, sample_rate * block_align, block_align, bits_per_sample,
    )


def build_wav(chunks: list[bytes]) -> bytes:
    body = b"WAVE" + b"".join(chunks)
    return b"RIFF" + struct.pack("<I", len(body)) + body


def make_descriptor(**overrides) -> SessionDescriptor:
    fields = {
        "session_id": "a1b2c3d4e5f6-session",
        "session_key": "sk-test-key",
        "ws_url": "wss://stt.example.test/v1/stream",
        "remaining_seconds": 300,
        "minutes": 5,
        "price_usd": "0.05",
    }
    fields.update(overrides)
    return SessionDescriptor(**fields)


class FakeConnection:
    def __init__(self, frames: list | None = None) -> None:
        self._inbound: asyncio.Queue = asyncio.Queue()
        self.sent: list[str | bytes] = []
        self.closed = False
        self.close_calls = 0
        self.fail_close = False
        self.url: str | None = None
        for frame in frames or []:
            self.feed(frame)

    @property
    def sent_text(self) -> list[dict]:
        return [json.loads(m) for m in self.sent if isinstance(m, str)]

    @property
    def sent_binary(self) -> list[bytes]:
        return [m for m in self.sent if isinstance(m, bytes)]

    def feed(self, frame: dict | str | bytes) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbound.put_nowait(frame)

    def drop(self) -> None:
        self._inbound.put_nowait(_CLOSE)

    async def send(self, message: str | bytes) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(message)

    async def recv(self) -> str | bytes:
        item = await self._inbound.get()
        if item is _CLOSE:
            raise ConnectionClosedOK(None, None)
        return item

    async def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise RuntimeError("close failed")
        if not self.closed:
            self.closed = True
            self._inbound.put_nowait(_CLOSE)

    async def __aiter__(self):
        while True:
            item = await self._inbound.get()
            if item is _CLOSE:
                return
            yield item


def connector_for(connection: FakeConnection):
    async def connect(url: str) -> FakeConnection:
        connection.url = url
        return connection

    return connect


class FakeNegotiator:
    def __init__(
        self,
        descriptor: SessionDescriptor | None = None,
        remaining_after_extend: int = 600,
        fail_extend: bool = False,
    ) -> None:
        self.descriptor = descriptor or make_descriptor()
        self.remaining_after_extend = remaining_after_extend
        self.fail_extend = fail_extend
        self.fail_lookups = False
        self.url = "https://stt.example.test"
        self.gate: asyncio.Event | None = None
        self.create_calls: list[tuple[int, str]] = []
        self.extend_calls: list[tuple[str, int]] = []
        self.closed = False

    async def create_session(self, minutes: int, language: str) -> SessionDescriptor:
        self.create_calls.append((minutes, language))
        return self.descriptor

    async def extend_session(self, session_id: str, minutes: int = 5) -> ExtensionResult:
        self.extend_calls.append((session_id, minutes))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_extend:
            raise PaymentError("Extend failed (402): insufficient funds")
        return ExtensionResult(
            remaining_seconds=self.remaining_after_extend,
            minutes_added=minutes,
            price_usd="0.05",
        )

    async def pricing(self) -> PricingInfo:
        if self.fail_lookups:
            raise STTConnectionError("Cannot reach server: connection refused")
        return PricingInfo(
            price_per_minute_usd=0.01,
            min_minutes=1,
            max_minutes=120,
            min_price_usd=0.01,
            currency="USDC",
            network="base",
        )

    async def health(self) -> dict:
        if self.fail_lookups:
            raise STTConnectionError("Cannot reach server: connection refused")
        return {"status": "ok"}

    async def aclose(self) -> None:
        self.closed = True


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def descriptor():
    return make_descriptor()


@pytest.fixture
def fake_connection():
    return FakeConnection()


@pytest.fixture
def ready_connection():
    return FakeConnection(frames=[{"type": "ready", "remaining_seconds": 300}])


@pytest.fixture
def fake_negotiator():
    return FakeNegotiator()


@pytest.fixture
def wav_file(tmp_path):
    path = tmp_path / "speech.wav"
    path.write_bytes(pcm_to_wav_bytes(generate_sine_wave(duration_ms=1000)))
    return path


@pytest.fixture(autouse=True)
def _restore_environ():
    # Code under test (e.g. _load_env_file) writes os.environ directly; undo it per test.
    saved = dict(os.environ)
    yield
    os.environ.clear()
    os.environ.update(saved)
