import asyncio
import logging
from collections.abc import Callable

from dtelecom_stt.domain.session import ExtensionResult
from dtelecom_stt.ports.negotiator import SessionNegotiatorPort

logger = logging.getLogger(__name__)

EXTEND_MINUTES = 5

ExtensionCallback = Callable[[ExtensionResult | None], None]


class AutoExtendPolicy:
    """Buys more session time when the server warns that it is running out.

    At most one extension is in flight; warnings arriving meanwhile are
    dropped, not queued. A failed extension is logged and the stream keeps
    running on the time it has left.
    """

    def __init__(
        self,
        negotiator: SessionNegotiatorPort,
        session_id: str,
        enabled: bool = True,
        minutes: int = EXTEND_MINUTES,
        log: logging.Logger | None = None,
    ) -> None:
        self._negotiator = negotiator
        self._session_id = session_id
        self._enabled = enabled
        self._minutes = minutes
        self._log = log or logger
        self._in_flight = False
        self._task: asyncio.Task | None = None
        self._requests = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def requests(self) -> int:
        return self._requests

    def trigger(self, on_done: ExtensionCallback | None = None) -> asyncio.Task | None:
        if not self._enabled:
            self._log.info("Auto-extend disabled, not extending")
            return None
        if self._in_flight:
            self._log.debug("Extension already in flight, ignoring warning")
            return None

        self._in_flight = True
        self._requests += 1
        self._task = asyncio.create_task(self._extend(on_done))
        return self._task

    async def wait(self) -> None:
        if self._task and not self._task.done():
            await self._task

    async def cancel(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _extend(self, on_done: ExtensionCallback | None) -> None:
        result = None
        try:
            result = await self._negotiator.extend_session(self._session_id, self._minutes)
            self._log.info(
                "Auto-extended session: +%dmin, remaining=%ds, $%s",
                result.minutes_added, round(result.remaining_seconds), result.price_usd or "?",
            )
        except Exception:
            self._log.exception("Auto-extend failed")
        finally:
            self._in_flight = False
            if on_done is not None:
                on_done(result)
