import logging

from dtelecom_stt.adapters.http_negotiator import HttpSessionNegotiator
from dtelecom_stt.adapters.websocket_connection import websocket_connector
from dtelecom_stt.domain.extend_policy import EXTEND_MINUTES
from dtelecom_stt.domain.handshake import HANDSHAKE_TIMEOUT_SECONDS
from dtelecom_stt.domain.pacer import CHUNK_MS, TRAILING_SILENCE_SECONDS
from dtelecom_stt.domain.session import PricingInfo
from dtelecom_stt.domain.stream import FILE_DRAIN_TIMEOUT_SECONDS, StreamSession
from dtelecom_stt.ports.connection import Connector

logger = logging.getLogger(__name__)


class STTClient:
    """Entry point for buying sessions and opening transcription streams."""

    def __init__(
        self,
        negotiator: HttpSessionNegotiator,
        connector: Connector | None = None,
        handshake_timeout: float = HANDSHAKE_TIMEOUT_SECONDS,
        extend_minutes: int = EXTEND_MINUTES,
        chunk_ms: int = CHUNK_MS,
        trailing_silence_seconds: float = TRAILING_SILENCE_SECONDS,
        drain_timeout: float = FILE_DRAIN_TIMEOUT_SECONDS,
    ) -> None:
        self._negotiator = negotiator
        self._connector = connector or websocket_connector()
        self._handshake_timeout = handshake_timeout
        self._stream_options = {
            "extend_minutes": extend_minutes,
            "chunk_ms": chunk_ms,
            "trailing_silence_seconds": trailing_silence_seconds,
            "drain_timeout": drain_timeout,
        }

    @property
    def negotiator(self) -> HttpSessionNegotiator:
        return self._negotiator

    def session(
        self,
        minutes: int = 5,
        language: str = "en",
        auto_extend: bool = True,
    ) -> "SessionContext":
        return SessionContext(self, minutes=minutes, language=language, auto_extend=auto_extend)

    async def pricing(self) -> PricingInfo:
        return await self._negotiator.pricing()

    async def health(self) -> dict:
        return await self._negotiator.health()

    async def aclose(self) -> None:
        await self._negotiator.aclose()

    async def __aenter__(self) -> "STTClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _open_stream(self, minutes: int, language: str, auto_extend: bool) -> StreamSession:
        descriptor = await self._negotiator.create_session(minutes, language)
        logger.info(
            "Session created: id=%s, %ds remaining, $%s",
            descriptor.short_id, descriptor.remaining_seconds, descriptor.price_usd,
        )
        return await StreamSession.open(
            self._connector,
            descriptor,
            self._negotiator,
            language=language,
            handshake_timeout=self._handshake_timeout,
            auto_extend=auto_extend,
            **self._stream_options,
        )


class SessionContext:
    """Pending session returned by ``STTClient.session``.

    ``await ctx.open()`` pays for the session and connects; ``async with ctx
    as stream`` does the same and closes the stream on exit.
    """

    def __init__(self, client: STTClient, minutes: int, language: str, auto_extend: bool) -> None:
        self._client = client
        self._minutes = minutes
        self._language = language
        self._auto_extend = auto_extend
        self._stream: StreamSession | None = None

    async def open(self) -> StreamSession:
        self._stream = await self._client._open_stream(
            self._minutes, self._language, self._auto_extend,
        )
        return self._stream

    async def __aenter__(self) -> StreamSession:
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        if self._stream is not None:
            await self._stream.close()
            self._stream = None
