import logging

import httpx

from dtelecom_stt.adapters.http_negotiator import HttpSessionNegotiator
from dtelecom_stt.adapters.websocket_connection import websocket_connector
from dtelecom_stt.client import STTClient
from dtelecom_stt.config import STTConfig
from dtelecom_stt.errors import PaymentError

logger = logging.getLogger(__name__)


def create_payment_client(private_key: str) -> httpx.AsyncClient:
    """HTTP client that answers 402 challenges with x402 EVM payments."""
    if not private_key:
        raise PaymentError(
            "No private key configured. Set DTELECOM_STT_PRIVATE_KEY or DTELECOM_PRIVATE_KEY"
        )
    from eth_account import Account
    from x402.clients.httpx import x402HttpxClient

    account = Account.from_key(private_key)
    logger.info("Paying from wallet %s", account.address)
    return x402HttpxClient(account=account, timeout=httpx.Timeout(None))


def create_negotiator(
    config: STTConfig, payment_client: httpx.AsyncClient | None = None,
) -> HttpSessionNegotiator:
    if payment_client is None:
        payment_client = create_payment_client(config.resolve_private_key())
    return HttpSessionNegotiator(
        payment_client=payment_client,
        url=config.url,
        lookup_timeout=config.http_timeout,
    )


def create_lookup_negotiator(config: STTConfig) -> HttpSessionNegotiator:
    """Negotiator for pricing and health lookups only; it cannot pay."""
    return create_negotiator(config, payment_client=httpx.AsyncClient(timeout=config.http_timeout))


def create_client(
    config: STTConfig, payment_client: httpx.AsyncClient | None = None,
) -> STTClient:
    return STTClient(
        negotiator=create_negotiator(config, payment_client),
        connector=websocket_connector(),
        handshake_timeout=config.handshake_timeout,
        extend_minutes=config.extend_minutes,
        chunk_ms=config.chunk_ms,
        trailing_silence_seconds=config.trailing_silence_seconds,
        drain_timeout=config.drain_timeout,
    )
