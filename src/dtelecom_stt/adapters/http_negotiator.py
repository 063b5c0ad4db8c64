import logging
from typing import Any

import httpx

from dtelecom_stt.domain.session import ExtensionResult, PricingInfo, SessionDescriptor
from dtelecom_stt.errors import PaymentError, STTConnectionError, STTError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://x402stt.dtelecom.org"
LOOKUP_TIMEOUT_SECONDS = 10.0


def websocket_base_url(url: str) -> str:
    url = url.rstrip("/")
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):]
    if url.startswith("http://"):
        return "ws://" + url[len("http://"):]
    return url


class HttpSessionNegotiator:
    """Buys and extends sessions over the server's HTTP API.

    ``payment_client`` must attach payment authorization to its requests
    (see ``factory.create_payment_client``); it is used for the two paid
    endpoints. Pricing and health lookups go through a plain client with a
    ten second timeout.
    """

    def __init__(
        self,
        payment_client: httpx.AsyncClient,
        url: str = DEFAULT_URL,
        lookup_client: httpx.AsyncClient | None = None,
        lookup_timeout: float = LOOKUP_TIMEOUT_SECONDS,
    ) -> None:
        self._url = url.rstrip("/")
        self._ws_url = websocket_base_url(self._url)
        self._payment_client = payment_client
        self._lookup_client = lookup_client or httpx.AsyncClient(
            timeout=httpx.Timeout(lookup_timeout),
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def stream_url(self) -> str:
        return f"{self._ws_url}/v1/stream"

    async def create_session(self, minutes: int, language: str) -> SessionDescriptor:
        resp = await self._post_paid("/v1/session", {"minutes": minutes, "language": language})

        if resp.status_code == 402:
            message = _json_or_empty(resp).get("message") or resp.reason_phrase
            raise PaymentError(f"Payment failed: {message}")
        if not resp.is_success:
            raise STTError(f"Session creation failed ({resp.status_code}): {resp.text}")

        data = _json_body(resp, "session")
        try:
            return SessionDescriptor(
                session_id=data["session_id"],
                session_key=data["session_key"],
                ws_url=data.get("ws_url") or self.stream_url,
                remaining_seconds=round(data["remaining_seconds"]),
                minutes=data["minutes"],
                price_usd=str(data["price_usd"]),
            )
        except (KeyError, TypeError) as exc:
            raise STTError(f"Malformed session response: {exc!r}") from exc

    async def extend_session(self, session_id: str, minutes: int = 5) -> ExtensionResult:
        resp = await self._post_paid(
            "/v1/session/extend", {"session_id": session_id, "minutes": minutes},
        )
        if not resp.is_success:
            raise PaymentError(f"Extend failed ({resp.status_code}): {resp.text}")

        data = _json_body(resp, "extend")
        price = data.get("price_usd")
        return ExtensionResult(
            remaining_seconds=round(data["remaining_seconds"]),
            minutes_added=data.get("minutes_added", minutes),
            price_usd=str(price) if price is not None else None,
        )

    async def pricing(self) -> PricingInfo:
        resp = await self._get("/pricing")
        if not resp.is_success:
            raise STTError(f"Pricing request failed ({resp.status_code})")

        data = _json_body(resp, "pricing")
        price_per_minute = data["price_per_minute_usd"]
        min_minutes = data["min_minutes"]
        min_price = data.get("min_price_usd")
        return PricingInfo(
            price_per_minute_usd=price_per_minute,
            min_minutes=min_minutes,
            max_minutes=data["max_minutes"],
            min_price_usd=min_price if min_price is not None else price_per_minute * min_minutes,
            currency=data["currency"],
            network=data["network"],
        )

    async def health(self) -> dict[str, Any]:
        resp = await self._get("/health")
        return _json_body(resp, "health")

    async def aclose(self) -> None:
        await self._lookup_client.aclose()
        await self._payment_client.aclose()

    async def _post_paid(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        logger.debug("POST %s %s", path, payload)
        try:
            return await self._payment_client.post(f"{self._url}{path}", json=payload)
        except httpx.HTTPError as exc:
            raise STTConnectionError(f"Cannot reach server: {exc}") from exc

    async def _get(self, path: str) -> httpx.Response:
        try:
            return await self._lookup_client.get(f"{self._url}{path}")
        except httpx.HTTPError as exc:
            raise STTConnectionError(f"Cannot reach server: {exc}") from exc


def _json_body(resp: httpx.Response, what: str) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as exc:
        raise STTError(f"Invalid {what} response: {exc}") from exc
    if not isinstance(data, dict):
        raise STTError(f"Invalid {what} response: expected a JSON object")
    return data


def _json_or_empty(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
