import logging
from typing import Any

from websockets import ClientConnection, connect

from dtelecom_stt.ports.connection import Connector

logger = logging.getLogger(__name__)

OPEN_TIMEOUT_SECONDS = 10.0
PING_INTERVAL_SECONDS = 20.0


def websocket_connector(
    open_timeout: float = OPEN_TIMEOUT_SECONDS,
    ping_interval: float | None = PING_INTERVAL_SECONDS,
    **kwargs: Any,
) -> Connector:
    async def _connect(url: str) -> ClientConnection:
        logger.debug("Connecting to %s", url)
        connection = await connect(
            url,
            open_timeout=open_timeout,
            ping_interval=ping_interval,
            max_size=None,
            **kwargs,
        )
        logger.debug("Connected to %s", url)
        return connection

    return _connect
