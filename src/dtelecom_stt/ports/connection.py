from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol


class ConnectionPort(Protocol):
    async def send(self, message: str | bytes) -> None: ...
    async def recv(self) -> str | bytes: ...
    async def close(self) -> None: ...
    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str], Awaitable[ConnectionPort]]
