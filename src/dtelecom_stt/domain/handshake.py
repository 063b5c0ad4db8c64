import asyncio
import logging
from dataclasses import dataclass

from websockets.exceptions import ConnectionClosed, WebSocketException

from dtelecom_stt.domain.frames import (
    ConfigFrame,
    ErrorFrame,
    ReadyFrame,
    SessionExpiredFrame,
    parse_frame,
)
from dtelecom_stt.domain.session import SessionDescriptor
from dtelecom_stt.errors import SessionExpiredError, STTConnectionError, STTError
from dtelecom_stt.ports.connection import ConnectionPort, Connector

logger = logging.getLogger(__name__)

HANDSHAKE_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class HandshakeResult:
    remaining_seconds: int
    session_id: str


async def perform_handshake(
    connector: Connector,
    descriptor: SessionDescriptor,
    language: str,
    timeout: float = HANDSHAKE_TIMEOUT_SECONDS,
    log: logging.Logger | None = None,
) -> tuple[ConnectionPort, HandshakeResult]:
    """Open the stream connection and wait until the server attaches the session.

    Sends the config frame, then reads exactly one frame, which must be
    ``ready``. On any failure the connection is closed before the error
    propagates.

    Raises:
        STTConnectionError: the connection failed or no frame arrived within
            ``timeout`` seconds.
        SessionExpiredError: the server reported the session as expired.
        STTError: the server answered with an error or an unexpected frame.
    """
    log = log or logger
    try:
        connection = await asyncio.wait_for(connector(descriptor.ws_url), timeout=timeout)
    except asyncio.TimeoutError:
        raise STTConnectionError(f"Timeout connecting to {descriptor.ws_url}") from None
    except (OSError, WebSocketException) as exc:
        raise STTConnectionError(f"WebSocket connection failed: {exc}") from exc

    try:
        result = await _await_ready(connection, descriptor, language, timeout)
    except (Exception, asyncio.CancelledError):
        await close_quietly(connection, log)
        raise

    log.info("Stream ready, remaining=%ds", result.remaining_seconds)
    return connection, result


async def _await_ready(
    connection: ConnectionPort,
    descriptor: SessionDescriptor,
    language: str,
    timeout: float,
) -> HandshakeResult:
    config = ConfigFrame(language=language, session_key=descriptor.session_key)
    try:
        await connection.send(config.model_dump_json())
        raw = await asyncio.wait_for(connection.recv(), timeout=timeout)
    except asyncio.TimeoutError:
        raise STTConnectionError("Timeout waiting for ready message") from None
    except ConnectionClosed as exc:
        raise STTConnectionError(f"Connection closed during handshake: {exc}") from exc

    frame = parse_frame(raw) if isinstance(raw, str) else None
    if isinstance(frame, ReadyFrame):
        remaining = frame.remaining_seconds
        return HandshakeResult(
            remaining_seconds=round(remaining) if remaining is not None else descriptor.remaining_seconds,
            session_id=frame.session_id or descriptor.session_id,
        )
    if isinstance(frame, ErrorFrame):
        raise STTError(f"Server error: {frame.describe()}")
    if isinstance(frame, SessionExpiredFrame):
        raise SessionExpiredError("Session expired before the stream was ready")
    raise STTError(f"Expected ready message, got: {raw!r}")


async def close_quietly(connection: ConnectionPort, log: logging.Logger | None = None) -> None:
    try:
        await connection.close()
    except Exception:
        (log or logger).debug("Ignoring error while closing connection", exc_info=True)
