import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterator, Callable
from pathlib import Path

from websockets.exceptions import ConnectionClosed

from dtelecom_stt.audio import load_wav
from dtelecom_stt.domain.channel import END, TIMEOUT, Signal, TranscriptionChannel
from dtelecom_stt.domain.extend_policy import EXTEND_MINUTES, AutoExtendPolicy
from dtelecom_stt.domain.frames import (
    ErrorFrame,
    ReadyFrame,
    SessionExpiredFrame,
    SessionExpiringFrame,
    SessionExtendedFrame,
    TranscriptionFrame,
    parse_frame,
)
from dtelecom_stt.domain.handshake import (
    HANDSHAKE_TIMEOUT_SECONDS,
    close_quietly,
    perform_handshake,
)
from dtelecom_stt.domain.pacer import CHUNK_MS, TRAILING_SILENCE_SECONDS, AudioPacer
from dtelecom_stt.domain.session import ExtensionResult, SessionDescriptor
from dtelecom_stt.domain.state import StreamState, validate_transition
from dtelecom_stt.domain.transcription import Transcription
from dtelecom_stt.errors import SessionExpiredError, StreamClosedError
from dtelecom_stt.ports.connection import ConnectionPort, Connector
from dtelecom_stt.ports.negotiator import SessionNegotiatorPort

logger = logging.getLogger(__name__)

FILE_DRAIN_TIMEOUT_SECONDS = 5.0

TranscriptionCallback = Callable[[Transcription], None]


class StreamSession:
    """A live speech-to-text stream bound to one purchased session.

    Use ``StreamSession.open`` (or ``STTClient.session().open()``) rather than
    the constructor: it runs the handshake and only then starts dispatching
    inbound frames.
    """

    def __init__(
        self,
        connection: ConnectionPort,
        descriptor: SessionDescriptor,
        negotiator: SessionNegotiatorPort,
        auto_extend: bool = True,
        extend_minutes: int = EXTEND_MINUTES,
        chunk_ms: int = CHUNK_MS,
        trailing_silence_seconds: float = TRAILING_SILENCE_SECONDS,
        drain_timeout: float = FILE_DRAIN_TIMEOUT_SECONDS,
        log: logging.Logger | None = None,
    ) -> None:
        self._connection = connection
        self._descriptor = descriptor
        self._log = log or logger
        self._drain_timeout = drain_timeout

        self._channel: TranscriptionChannel[Transcription] = TranscriptionChannel()
        self._callbacks: list[TranscriptionCallback] = []
        self._policy = AutoExtendPolicy(
            negotiator,
            descriptor.session_id,
            enabled=auto_extend,
            minutes=extend_minutes,
            log=self._log,
        )
        self._pacer = AudioPacer(
            self.send_audio,
            chunk_ms=chunk_ms,
            trailing_silence_seconds=trailing_silence_seconds,
        )

        self._state = StreamState.HANDSHAKING
        self._remaining_seconds = descriptor.remaining_seconds
        self._closed = False
        self._expired = False
        self._receive_task: asyncio.Task | None = None

    @classmethod
    async def open(
        cls,
        connector: Connector,
        descriptor: SessionDescriptor,
        negotiator: SessionNegotiatorPort,
        language: str = "en",
        handshake_timeout: float = HANDSHAKE_TIMEOUT_SECONDS,
        log: logging.Logger | None = None,
        **options,
    ) -> "StreamSession":
        connection, ready = await perform_handshake(
            connector, descriptor, language, timeout=handshake_timeout, log=log or logger,
        )
        try:
            stream = cls(connection, descriptor, negotiator, log=log, **options)
        except Exception:
            await close_quietly(connection, log)
            raise
        stream._activate(ready.remaining_seconds)
        return stream

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def descriptor(self) -> SessionDescriptor:
        return self._descriptor

    @property
    def session_id(self) -> str:
        return self._descriptor.session_id

    @property
    def remaining_seconds(self) -> int:
        return self._remaining_seconds

    @property
    def closed(self) -> bool:
        return self._state == StreamState.CLOSED

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def extension_policy(self) -> AutoExtendPolicy:
        return self._policy

    async def __aenter__(self) -> "StreamSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # -- lifecycle --

    def _activate(self, remaining_seconds: int) -> None:
        self._remaining_seconds = remaining_seconds
        self._transition_to(StreamState.ACTIVE)
        self._receive_task = asyncio.create_task(self._receive_loop())

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._finish()

        await self._policy.cancel()
        await close_quietly(self._connection, self._log)

        if self._receive_task and self._receive_task is not asyncio.current_task():
            try:
                await asyncio.wait_for(self._receive_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
        self._log.info("Stream closed")

    def _finish(self) -> None:
        if self._state != StreamState.CLOSED:
            self._transition_to(StreamState.CLOSED)
        self._channel.close()

    def _transition_to(self, target: StreamState) -> None:
        validate_transition(self._state, target)
        self._log.info("State: %s -> %s", self._state.name, target.name)
        self._state = target

    # -- sending audio --

    async def send_audio(self, data: bytes) -> None:
        """Send raw PCM16 16 kHz mono bytes as they are, without pacing."""
        self._ensure_open()
        try:
            await self._connection.send(data)
        except ConnectionClosed as exc:
            self._finish()
            if self._expired:
                raise SessionExpiredError("Session expired") from exc
            raise StreamClosedError("Stream is closed") from exc

    def _ensure_open(self) -> None:
        if self._expired:
            raise SessionExpiredError("Session expired")
        if not self._state.accepts_audio:
            raise StreamClosedError("Stream is closed")

    # -- receiving transcriptions --

    def on_transcription(self, callback: TranscriptionCallback) -> None:
        self._callbacks.append(callback)

    async def pull(self) -> Transcription | Signal:
        """Next transcription, or END once the stream is over."""
        return await self._channel.pull()

    async def pull_with_timeout(self, timeout: float) -> Transcription | Signal:
        """Next transcription, END once the stream is over, or TIMEOUT if
        nothing arrived within ``timeout`` seconds."""
        return await self._channel.pull_with_timeout(timeout)

    async def transcriptions(self) -> AsyncIterator[Transcription]:
        async for item in self._channel:
            yield item

    async def transcribe_file(self, path: str | Path) -> AsyncIterator[Transcription]:
        """Stream a WAV file at real-time speed and yield its transcriptions.

        Transcriptions that arrive while audio is still being sent stay
        buffered and are yielded once the trailing silence has gone out.
        Iteration ends when no transcription arrives for ``drain_timeout``
        seconds or the stream ends.
        """
        wav = load_wav(path)
        self._log.info("Streaming file %s (%.1fs)", path, wav.duration)
        try:
            await self._pacer.stream(wav.pcm_data)
        except (StreamClosedError, SessionExpiredError):
            if self._closed:
                raise
            self._log.warning("Stream ended while sending %s", path)

        while True:
            item = await self._channel.pull_with_timeout(self._drain_timeout)
            if item is END or item is TIMEOUT:
                return
            yield item

    # -- inbound frames --

    async def _receive_loop(self) -> None:
        try:
            async for raw in self._connection:
                self._dispatch(raw)
        except ConnectionClosed as exc:
            self._log.info("Connection closed: %s", exc)
        except Exception:
            if not self._closed:
                self._log.exception("Receive loop failed")
        finally:
            self._on_connection_closed()

    def _dispatch(self, raw: str | bytes) -> None:
        if isinstance(raw, bytes):
            return
        frame = parse_frame(raw)

        if isinstance(frame, TranscriptionFrame):
            self._deliver(frame.to_transcription())
        elif isinstance(frame, SessionExpiringFrame):
            self._on_session_expiring(frame)
        elif isinstance(frame, SessionExtendedFrame):
            if frame.remaining_seconds is not None:
                self._remaining_seconds = round(frame.remaining_seconds)
            self._log.info("Session extended, %ds remaining", self._remaining_seconds)
        elif isinstance(frame, SessionExpiredFrame):
            self._log.error("Session expired")
            self._expired = True
            self._remaining_seconds = 0
            self._finish()
        elif isinstance(frame, ErrorFrame):
            self._log.error("Server error: %s", frame.describe())
        elif isinstance(frame, ReadyFrame):
            self._log.debug("Ignoring repeated ready frame")
        else:
            self._log.debug("Ignoring unrecognized frame: %.200s", raw)

    def _deliver(self, transcription: Transcription) -> None:
        if transcription.is_final:
            self._log.info("Transcript: %s", transcription.text)
        else:
            self._log.debug("Transcript (interim): %s", transcription.text)

        self._channel.push(transcription)
        for callback in list(self._callbacks):
            try:
                callback(transcription)
            except Exception:
                self._log.exception("Transcription callback error")

    def _on_session_expiring(self, frame: SessionExpiringFrame) -> None:
        if frame.remaining_seconds is not None:
            self._remaining_seconds = round(frame.remaining_seconds)
        self._log.warning("Session expiring, %ds remaining", self._remaining_seconds)
        if self._state not in (StreamState.ACTIVE, StreamState.EXTENDING):
            return
        if self._policy.trigger(self._on_extension_done) is not None:
            self._transition_to(StreamState.EXTENDING)

    def _on_extension_done(self, result: ExtensionResult | None) -> None:
        if result is not None and self._state.accepts_audio:
            self._descriptor = dataclasses.replace(
                self._descriptor, remaining_seconds=round(result.remaining_seconds),
            )
            self._remaining_seconds = self._descriptor.remaining_seconds
        if self._state == StreamState.EXTENDING:
            self._transition_to(StreamState.ACTIVE)

    def _on_connection_closed(self) -> None:
        if not self._closed and not self._channel.closed:
            self._log.info("Connection lost, ending stream")
        self._finish()
